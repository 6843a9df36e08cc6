from __future__ import annotations

# Minimal shape a model reply must have to be mapped field by field.
# The other keys are coerced leniently by the response parser.
ANALYSIS_REPLY_SCHEMA: dict = {
    "type": "object",
    "required": ["message"],
    "properties": {
        "message": {"type": "string"},
        "reformulated_query": {},
        "insights": {},
        "recommendations": {},
        "metrics": {},
    },
}


ANALYSIS_RESULT_SCHEMA: dict = {
    "type": "object",
    "additionalProperties": False,
    "required": ["message", "reformulated_query", "insights", "recommendations", "metrics"],
    "properties": {
        "message": {"type": "string"},
        "reformulated_query": {"type": ["string", "null"]},
        "insights": {"type": "array", "items": {"type": "string"}},
        "recommendations": {"type": "array", "items": {"type": "string"}},
        "metrics": {"type": "object", "additionalProperties": {"type": "string"}},
    },
}


CHAT_ROW_SCHEMA: dict = {
    "type": "object",
    "additionalProperties": False,
    "required": [
        "id",
        "owner_id",
        "session_id",
        "message_text",
        "is_user_message",
        "timestamp",
        "insights",
        "recommendations",
        "reformulated_query",
        "metrics",
    ],
    "properties": {
        "id": {"type": "string", "minLength": 1},
        "owner_id": {"type": "string", "minLength": 1},
        "session_id": {"type": "string", "minLength": 1},
        "message_text": {"type": "string"},
        "is_user_message": {"type": "boolean"},
        "timestamp": {"type": "string", "minLength": 1},
        "insights": {"type": ["array", "null"], "items": {"type": "string"}},
        "recommendations": {"type": ["array", "null"], "items": {"type": "string"}},
        "reformulated_query": {"type": ["string", "null"]},
        "metrics": {"type": ["object", "null"], "additionalProperties": {"type": "string"}},
    },
}
