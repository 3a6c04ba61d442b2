import json
import logging
import re

from .errors import MalformedResponse

logger = logging.getLogger(__name__)

# first "{" to last "}": survives prose and ```json fences around the object
_OUTER_BRACES = re.compile(r"\{.*\}", re.DOTALL)


def _load_object(text: str):
    try:
        data = json.loads(text)
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def parse_analysis_text(text: str) -> dict:
    """
    Turn the model's answer text into a dict.

    Two attempts only: the whole text, then the outermost brace block.
    """

    text = (text or "").strip()

    data = _load_object(text)
    if data is not None:
        return data

    match = _OUTER_BRACES.search(text)
    if match:
        data = _load_object(match.group(0))
        if data is not None:
            return data

    logger.warning("UNPARSEABLE AI RESPONSE: %.300s", text)
    raise MalformedResponse("AI response was not in the correct format.")
