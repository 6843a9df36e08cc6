from __future__ import annotations

SYSTEM_PROMPT = "You are an expert data analyst. Provide clear, actionable insights based on data analysis."

CURRENCY_LABEL = "Romanian currency (LEI)"
NUMBER_FORMAT_EXAMPLE = "1,234.56 LEI, 45.7%"

REFORMULATION_EXAMPLES: tuple[tuple[str, str], ...] = (
    ("who sold most", "Identify the top-performing sales representatives by total revenue and units sold"),
    ("show me trends", "Analyze sales trends by time period, product category, and geographic region"),
    ("what's our revenue", "Calculate total revenue, revenue by product category, and revenue growth trends"),
)

REFORMULATION_GUIDELINES: tuple[str, ...] = (
    "Fix grammar, spelling, and clarity issues in the original question",
    "Convert casual language to professional data analysis terminology",
    "Identify the core analytical intent behind the question",
    "Add missing context or specificity that would improve analysis",
    'Use proper data analysis terminology (e.g., "top performers" instead of "who sold most")',
    "Clarify ambiguous terms and add precision to vague requests",
    "Structure the reformulated query to maximize analytical accuracy",
)

OUTPUT_TEMPLATE = """{
  "reformulated_query": "Professional, precise reformulation of the user's question with proper data analysis terminology",
  "message": "Your main response with specific numbers and data points",
  "insights": ["Specific insight with numbers", "Another insight with metrics"],
  "metrics": {
    "total_sales": "1,234,567 LEI",
    "top_performer": "Maria Popescu - 45,678 LEI",
    "average_performance": "12,345 LEI"
  },
  "recommendations": ["Specific recommendation with data backing", "Another actionable recommendation"]
}"""


def _bullets(items: tuple[str, ...] | list[str]) -> str:
    return "\n".join(f"- {item}" for item in items)


def compose_analysis_prompt(question: str, data_context: str, scope_note: str | None = None) -> str:
    """Build the single user prompt sent to the model.

    Pure string building: identical inputs always produce identical output.
    """
    examples = [f'"{casual}" → "{professional}"' for casual, professional in REFORMULATION_EXAMPLES]
    instructions = [
        "Always include SPECIFIC NUMBERS, percentages, and metrics in your response",
        "Reformulate the user's question into a professional data analysis query",
        "Provide concrete data points, not just qualitative statements",
        "Calculate totals, averages, rankings, and percentages where relevant",
        f"Use {CURRENCY_LABEL} for monetary values",
        f"Format numbers with appropriate precision (e.g., {NUMBER_FORMAT_EXAMPLE})",
    ]

    sections = [
        "You are an expert data analyst. Your role is to:\n\n"
        "1. INTELLIGENTLY REFORMULATE the user's question into a precise, professional data analysis query\n"
        "2. ANALYZE the data thoroughly with specific numbers and metrics\n"
        "3. PROVIDE actionable insights with concrete data points",
        f"Data Context:\n{data_context.rstrip()}",
    ]
    if scope_note:
        sections.append(scope_note.strip())
    sections.extend(
        [
            f"User Question: {question}",
            f"QUERY REFORMULATION GUIDELINES:\n{_bullets(REFORMULATION_GUIDELINES)}",
            f"EXAMPLES OF QUERY IMPROVEMENT:\n{_bullets(examples)}",
            f"IMPORTANT INSTRUCTIONS:\n{_bullets(instructions)}",
            "Please provide a JSON response with the following structure. Return ONLY the JSON object, "
            "no additional text, formatting, or markdown code blocks:\n\n" + OUTPUT_TEMPLATE,
            "CRITICAL: Return ONLY the JSON object, no markdown formatting, no code blocks, no additional text.",
            "IMPORTANT: The response must be a valid JSON object that can be parsed directly. "
            "Do not wrap it in markdown or add any text before or after the JSON.",
        ]
    )
    return "\n\n".join(sections)
