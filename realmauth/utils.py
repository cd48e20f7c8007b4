import json
import logging
from urllib.parse import parse_qs


logger = logging.getLogger(__name__)

SECURE_PATTERN_START = "/*-secure-\n"
SECURE_PATTERN_END = "*/"


def concatenate_urls(root, path):
    if not root:
        return path
    if not path:
        return root
    return "{}/{}".format(root.rstrip("/"), path.lstrip("/"))


def get_parameter_value_from_query(query, name):
    """Returns the URL-decoded value of a query parameter, or None."""
    values = parse_qs(query or "", keep_blank_values=True).get(name)
    return values[0] if values else None


def extract_secure_json(response):
    """Returns the JSON object inside a response body, or None.

    The body may be wrapped as ``/*-secure-\\n{...}*/``,
    which prevents it from being evaluated as a script.
    """
    text = (response.text if response is not None else None) or ""
    stripped = text.strip()
    if stripped.startswith(SECURE_PATTERN_START.strip()) and stripped.endswith(
            SECURE_PATTERN_END):
        stripped = stripped[
            len(SECURE_PATTERN_START.strip()):-len(SECURE_PATTERN_END)]
    try:
        result = json.loads(stripped)
    except ValueError:
        logger.debug("Response body is not JSON: %.100s", text)
        return None
    return result if isinstance(result, dict) else None
