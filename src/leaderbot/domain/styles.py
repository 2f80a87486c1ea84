"""Style catalogue for image generation."""

from dataclasses import dataclass
from enum import Enum


@dataclass(frozen=True)
class StyleConfig:
    """Declarative style definition."""

    name: str
    label: str
    demo_file: str
    instruction: str

    @property
    def payload(self) -> str:
        """Quick-reply payload that selects this style."""
        return f"STYLE_{self.name.upper()}"


class Style(Enum):
    """Enum of supported styles (single source of truth)."""

    CARICATURE = StyleConfig(
        "caricature",
        "🎨 Caricature",
        "01-caricature.png",
        "playful hand-drawn caricature with exaggerated features",
    )
    PETALS = StyleConfig(
        "petals",
        "🌸 Petals",
        "02-petals.png",
        "soft portrait surrounded by drifting flower petals",
    )
    GOLD = StyleConfig(
        "gold",
        "✨ Gold",
        "03-gold.png",
        "luxurious golden glow with warm metallic highlights",
    )
    CINEMATIC = StyleConfig(
        "cinematic",
        "🎬 Cinematic",
        "04-crayon.png",
        "cinematic film still with dramatic lighting and color grading",
    )
    DISCO = StyleConfig(
        "disco",
        "🪩 Disco Glow",
        "05-paparazzi.png",
        "disco party glow with mirror-ball reflections",
    )
    CLOUDS = StyleConfig(
        "clouds",
        "☁️ Clouds",
        "06-clouds.png",
        "dreamy scene floating among pastel clouds",
    )


def style_configs() -> list[StyleConfig]:
    """Return all styles in presentation order."""
    return [entry.value for entry in Style]


def get_style(name: str) -> StyleConfig | None:
    """Return the style with the given canonical name."""
    for config in style_configs():
        if config.name == name:
            return config
    return None


def parse_style(value: str | None) -> StyleConfig | None:
    """Resolve a payload, canonical name or label text to a style."""
    if not value:
        return None
    cleaned = value.strip().lower()
    if not cleaned:
        return None
    for config in style_configs():
        label_text = config.label.split(" ", maxsplit=1)[-1].lower()
        if cleaned in {config.name, config.payload.lower(), label_text}:
            return config
        if cleaned == config.label.lower():
            return config
    return None


def build_prompt(config: StyleConfig) -> str:
    """Return the provider instruction for a style."""
    return (
        f"Apply {config.name} style to this photo: {config.instruction}. "
        "Keep the person recognizable and preserve the composition."
    )
