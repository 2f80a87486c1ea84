"""Outbound message texts in Dutch and English."""

DEFAULT_LANG = "nl"

_TEXTS: dict[str, dict[str, str]] = {
    "nl": {
        "flow_explanation": (
            "Stuur een foto en ik maak er een speciale versie van in een andere "
            "stijl. Het is gratis."
        ),
        "style_picker": "Dank je. Kies hieronder een stijl.",
        "success": "Klaar. Je kan de afbeelding opslaan door erop te tikken.",
        "processing_blocked": "Ik ben nog bezig met je vorige afbeelding.",
        "style_without_photo": "Stuur eerst een foto, dan maak ik die stijl voor je.",
        "text_without_photo": (
            "Stuur gerust een foto, dan kan ik een stijl voor je maken."
        ),
        "privacy": (
            "Je foto wordt enkel gebruikt om de afbeelding te maken.\n"
            "Ze wordt daarna niet bewaard.\n"
            "Hier kan je het volledige privacybeleid lezen: {link}"
        ),
        "about": (
            "Leaderbot is gemaakt door Andy. Je mag hem gerust contacteren via "
            "Facebook."
        ),
        "failure": (
            "Er ging iets mis bij het maken van je afbeelding. "
            "Kies gerust opnieuw een stijl."
        ),
        "missing_input_image": (
            "Ik kon je foto niet goed lezen. Stuur ze nog eens door aub."
        ),
        "generating": "Ik maak nu je {style}-stijl.",
        "quota_reached": (
            "Je gratis limiet is bereikt ({limit} per dag). Kom morgen terug."
        ),
        "result_ready": "Wil je nog een andere stijl proberen?",
        "failure_options": "Wil je het opnieuw proberen?",
        "hd_unavailable": "Ik kan een HD-versie delen nadat ik een afbeelding maakte.",
        "hd_ready": "Hier is je afbeelding in volle resolutie.",
        "generation_unavailable": "AI-generatie is nog niet beschikbaar.",
        "generation_timeout": "Dit duurde te lang.",
        "generation_generic_failure": "Ik kon die afbeelding nu niet maken.",
        "button_what_is_this": "Wat doe ik?",
        "button_privacy": "Privacy",
        "button_new_style": "Nieuwe stijl",
        "button_retry": "Probeer opnieuw",
        "button_other_style": "Andere stijl",
        "button_download": "Download HD",
    },
    "en": {
        "flow_explanation": (
            "Send a photo and I will make a special version of it in another "
            "style for free."
        ),
        "style_picker": "Thanks. Choose a style below.",
        "success": "Done. You can save the image by tapping it.",
        "processing_blocked": "I am still working on your previous image.",
        "style_without_photo": (
            "Send a photo first, then I can make that style for you."
        ),
        "text_without_photo": (
            "Feel free to send a photo, then I can make a style for you."
        ),
        "privacy": (
            "Your photo is only used to make the image.\n"
            "It is not stored afterwards.\n"
            "You can read the full privacy policy here: {link}"
        ),
        "about": "Leaderbot was made by Andy. Feel free to contact him via Facebook.",
        "failure": (
            "Something went wrong while making your image. "
            "Feel free to choose a style again."
        ),
        "missing_input_image": (
            "I could not read your photo properly. Please send it again."
        ),
        "generating": "I am now making your {style} style.",
        "quota_reached": (
            "You reached your free limit ({limit} per day). Come back tomorrow."
        ),
        "result_ready": "Want to try another style?",
        "failure_options": "Do you want to try again?",
        "hd_unavailable": "I can share HD downloads after I generate an image.",
        "hd_ready": "Here is your image in full resolution.",
        "generation_unavailable": "AI generation isn't enabled yet.",
        "generation_timeout": "This took too long.",
        "generation_generic_failure": "I couldn't generate that image right now.",
        "button_what_is_this": "What is this?",
        "button_privacy": "Privacy",
        "button_new_style": "New style",
        "button_retry": "Retry this style",
        "button_other_style": "Other style",
        "button_download": "Download HD",
    },
}


def normalize_lang(locale: str | None) -> str:
    """Map a platform locale like en_US to a supported language."""
    if isinstance(locale, str) and locale.strip().lower().startswith("en"):
        return "en"
    return DEFAULT_LANG


def t(lang: str | None, key: str, **params: object) -> str:
    """Return the text for a key, formatted with params."""
    table = _TEXTS.get(lang or DEFAULT_LANG, _TEXTS[DEFAULT_LANG])
    template = table[key]
    return template.format(**params) if params else template
