"""Tone prompt helpers for the reply phrasing pass."""

from __future__ import annotations

from collections.abc import Mapping

from ..businesses.directory import BusinessTone


class TonePromptStore:
    """Resolve the system prompt used to rephrase template replies."""

    _BASE = (
        "You rewrite chat replies sent on behalf of a business to its customers. "
        "Keep every fact, number, date, name and list item from the draft. "
        "Do not add offers, links or information that is not in the draft. "
        "Reply with the rewritten message only."
    )

    _DEFAULT_TEMPLATES: Mapping[str, str] = {
        "friendly": "Sound warm and approachable. Short sentences, light enthusiasm.",
        "formal": "Sound courteous and professional. No slang or emoji.",
        "concise": "Be as brief as possible while keeping every fact.",
        "playful": "Sound upbeat and casual. One emoji at most.",
    }

    def __init__(self, extra_templates: Mapping[str, str] | None = None) -> None:
        self._templates = dict(self._DEFAULT_TEMPLATES)
        if extra_templates:
            self._templates.update({k.lower(): v for k, v in extra_templates.items()})

    def resolve(self, tone: BusinessTone | None) -> str:
        """Return the system prompt for ``tone``.

        Tenant-specific instructions win over the named template; unknown tone
        names fall back to ``friendly``.
        """

        tone = tone or BusinessTone()
        style = tone.instructions or self._templates.get(
            tone.name.lower(), self._templates["friendly"]
        )
        prompt = f"{self._BASE} Style: {style}"
        if tone.business_name:
            prompt += f" You speak for {tone.business_name}."
        return prompt


__all__ = ["TonePromptStore"]
