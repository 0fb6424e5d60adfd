import re
from typing import Optional

DEFAULT_PROMPT_TEMPLATE = (
    "A photo-realistic, ultra-detailed image of a {{CATEGORY}} in pristine condition, "
    "captured at a 3/4 front angle on a sleek, modern showroom floor with professional lighting. "
    "The flawless paint reflects perfectly, showcasing chrome accents and tire details. "
    "The background features a soft gray-to-white gradient for depth. "
    "High-resolution, showroom-quality, with no people, text, or logos aside from the manufacturer's badges."
)


def build_prompt(category: str, template: Optional[str] = None) -> str:
    out = str(template or DEFAULT_PROMPT_TEMPLATE)
    out = out.replace("{{CATEGORY}}", str(category or "").strip())
    # Templates from YAML block scalars carry line breaks.
    return re.sub(r"\s+", " ", out).strip()
