import json
from typing import Any


def extract_json_object(content: str) -> dict[str, Any]:
    """
    Pull the first JSON object out of an LLM reply.

    Models often wrap JSON in markdown fences or add a sentence around it,
    so everything outside the outermost braces is ignored.

    Raises:
        ValueError: If no JSON object can be decoded
    """
    start = content.find("{")
    end = content.rfind("}")
    if start == -1 or end <= start:
        raise ValueError("No JSON object in response")
    data = json.loads(content[start : end + 1])
    if not isinstance(data, dict):
        raise ValueError("Response JSON is not an object")
    return data
