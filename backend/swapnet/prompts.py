"""
Prompt composition for every generation task.

Part order matters: the guideline text addresses images by position, and
IMAGE 1 is always the identity / pose / background reference. Optional
inputs are left out entirely rather than replaced with placeholders, so the
image legend is built from whatever was actually supplied.
"""
from typing import Any, Dict, List, Optional

from .encoding import inline_part


DEFAULT_BACKGROUND_PROMPT = "A modern studio background."

TRY_ON_GUIDELINES = (
    "A high-quality professional studio photograph.\n"
    "The person from IMAGE 1 is now wearing the exact clothing items shown in the other images.\n"
    "The person's facial features, pose, hair, and background from IMAGE 1 must remain exactly the same.\n"
    "The clothing fit should be perfectly matched to the person's body shape.\n"
    "Reproduce fabric, color, pattern and construction details faithfully; do not invent extra garments."
)

BACKGROUND_GUIDELINES = (
    "Keep the subject identical: same face, body, pose, clothing and lighting on the subject.\n"
    "Only the background may change, and it must blend naturally with the subject's lighting and perspective."
)

OUTFIT_ANALYSIS_INSTRUCTION = "Describe this outfit for high-quality video generation."

ROLE_LABELS = {
    "subject": "the person (identity, pose and background reference)",
    "garment": "the garment to wear",
    "garment_detail": "a close-up detail of the garment (fabric, print, construction)",
    "accessory": "an accessory to wear",
    "detail": "a close-up detail of the subject's outfit to preserve",
    "custom_background": "the reference environment for the new background",
}


def text_part(text: str) -> Dict[str, Any]:
    return {"text": text}


def _image_parts(tagged) -> List[Dict[str, Any]]:
    return [inline_part(asset) for _role, asset in tagged]


def _legend(tagged) -> str:
    lines = [f"IMAGE {idx}: {ROLE_LABELS[role]}." for idx, (role, _asset) in enumerate(tagged, start=1)]
    return "\n".join(lines)


def _present(*role_assets):
    return [(role, asset) for role, asset in role_assets if asset is not None]


def compose_try_on(subject, garment=None, garment_detail=None, accessory=None, free_text: str = "", aspect_ratio: str = "9:16") -> List[Dict[str, Any]]:
    """
    Parts for a try-on request: subject, then garment / garment detail / accessory
    when supplied, then one instruction text part.
    """
    if subject is None:
        raise ValueError("compose_try_on requires a subject image")

    tagged = _present(
        ("subject", subject),
        ("garment", garment),
        ("garment_detail", garment_detail),
        ("accessory", accessory),
    )

    text = TRY_ON_GUIDELINES + "\n\n" + _legend(tagged) + f"\n\nAspect ratio: {aspect_ratio}."
    style = (free_text or "").strip()
    if style:
        text += f"\nStyle guidance: {style}"

    return _image_parts(tagged) + [text_part(text)]


def compose_background_change(subject, detail=None, custom_bg=None, prompt_text: str = DEFAULT_BACKGROUND_PROMPT, aspect_ratio: str = "9:16") -> List[Dict[str, Any]]:
    if subject is None:
        raise ValueError("compose_background_change requires a subject image")

    tagged = _present(
        ("subject", subject),
        ("detail", detail),
        ("custom_background", custom_bg),
    )

    if custom_bg is not None:
        target = "the environment from the reference image"
    else:
        target = (prompt_text or "").strip() or DEFAULT_BACKGROUND_PROMPT

    text = (
        f"Keep the subject identical. Replace background with: {target}.\n\n"
        + BACKGROUND_GUIDELINES
        + "\n\n"
        + _legend(tagged)
        + f"\n\nAspect ratio: {aspect_ratio}."
    )
    return _image_parts(tagged) + [text_part(text)]


def compose_outfit_analysis(image, detail=None) -> List[Dict[str, Any]]:
    tagged = _present(("subject", image), ("detail", detail))
    return _image_parts(tagged) + [text_part(OUTFIT_ANALYSIS_INSTRUCTION)]


def compose_prompt_instruction(count: int) -> str:
    return f'Generate {count} video motion prompts for this outfit. Return JSON {{ "prompts": [] }}.'


def compose_imagen_try_on(free_text: Optional[str]) -> str:
    # Imagen takes no input images, so the garment can only be described
    subject = (free_text or "").strip() or "this garment"
    return (
        f"A professional full body photograph of a person wearing {subject}. "
        "High fashion style, 4k resolution, studio lighting."
    )


def compose_imagen_background(prompt_text: Optional[str]) -> str:
    return (prompt_text or "").strip() or DEFAULT_BACKGROUND_PROMPT
