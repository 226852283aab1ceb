import json


def safe_parse_json(raw: str):
    """
    Parse a webhook response body. Never raises.

    Returns the decoded value, or None for empty / non-JSON bodies.
    A literal JSON null also comes back as None, which callers treat the same.
    """
    if not raw or not raw.strip():
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, ValueError):
        return None


def extract_output(raw: str) -> str:
    """
    Pick the result text out of an automation webhook response.

    - [{"output": ...}, ...] -> first element's output
    - {"output": ...}        -> output
    - anything else          -> raw body unchanged
    Non-string outputs are re-encoded as JSON.
    """
    data = safe_parse_json(raw)

    if isinstance(data, list) and data and isinstance(data[0], dict) and "output" in data[0]:
        output = data[0]["output"]
    elif isinstance(data, dict) and "output" in data:
        output = data["output"]
    else:
        return raw

    if isinstance(output, str):
        return output
    return json.dumps(output, ensure_ascii=False)
