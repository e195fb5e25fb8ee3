# stylestudio/prompt_builder.py

from typing import Dict, List, Union

from .model import Category


HAIRSTYLES: Dict[Category, List[str]] = {
    Category.MALE: [
        "Buzz Cut (with Fade)",
        "Disconnected Undercut",
        "Samurai Bun",
        "Messy Medium Hair",
        "Cornrows",
        "Long Wavy Hair",
    ],
    Category.FEMALE: [
        "Asymmetric Pixie",
        "French Bob (with Bangs)",
        "Mermaid Waves (Long)",
        "Messy High Bun",
        "Boxer Braids",
        "Voluminous Afro",
    ],
}

# Wording used inside the prompts for each category
CATEGORY_TERMS: Dict[Category, str] = {
    Category.MALE: "men's",
    Category.FEMALE: "women's",
}


def _term(category: Union[Category, str]) -> str:
    try:
        return CATEGORY_TERMS[Category(category)]
    except ValueError:
        return str(category)


def labels_for(category: Union[Category, str]) -> List[str]:
    """Return a fresh copy of the label set for a category."""
    return list(HAIRSTYLES[Category(category)])


def build_instruction(label: str, category: Union[Category, str]) -> str:
    """
    Primary instruction for one hairstyle:
    - names the style and category
    - asks for a photorealistic barbershop-consultation picture
    - keeps the person's features as intact as possible
    """
    return (
        f"Give the person in this photo a modern {_term(category)} '{label}' hairstyle. "
        "The result must be a photorealistic image, perfect for a barbershop "
        "consultation, focusing on the hairstyle change while preserving the "
        "person's facial features as much as possible."
    )


def build_fallback_instruction(label: str, category: Union[Category, str]) -> str:
    """
    Softer wording, used when the model refused the primary instruction.
    """
    return (
        f"Create a photograph of the person in this image with a modern "
        f"{_term(category)} {label} hairstyle. The photograph should clearly show "
        "the hairstyle and look authentic and high quality."
    )
