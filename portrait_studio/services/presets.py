from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List


SUPPORTED_LANGS = ('zh', 'en')
DEFAULT_LANG = 'zh'


def normalize_lang(code: str | None) -> str:
    if not code:
        return DEFAULT_LANG
    value = code.strip().lower()
    if value.startswith('zh'):
        return 'zh'
    return 'en'


@dataclass(frozen=True)
class StylePreset:
    key: str
    display_name: str
    prompts: Dict[str, str]

    def prompt_for(self, lang: str) -> str:
        return self.prompts.get(normalize_lang(lang)) or self.prompts['en']


ID_PHOTO = StylePreset(
    key='id',
    display_name='ID photo',
    prompts={
        'zh': 'Generate a formal ID photo with blue background, business attire, smiling, professional look',
        'en': 'Generate a formal ID photo with blue background, business attire, smiling, professional look',
    },
)

FESTIVAL_PHOTO = StylePreset(
    key='festival',
    display_name='Festival photo',
    prompts={
        'zh': (
            'Generate a festive celebration photo with celebratory red background, warm smile, '
            'Chinese New Year style'
        ),
        'en': 'Generate a festive celebration photo with celebratory red background, warm smile',
    },
)

MEMORIAL_PHOTO = StylePreset(
    key='memorial',
    display_name='Memorial photo',
    prompts={
        'zh': 'Generate a dignified black and white memorial portrait, serious expression, classic style',
        'en': 'Generate a dignified black and white memorial portrait, serious expression',
    },
)


STYLE_PRESETS: Dict[str, StylePreset] = {
    ID_PHOTO.key: ID_PHOTO,
    FESTIVAL_PHOTO.key: FESTIVAL_PHOTO,
    MEMORIAL_PHOTO.key: MEMORIAL_PHOTO,
}


def list_presets() -> List[StylePreset]:
    return list(STYLE_PRESETS.values())


def get_preset(key: str | None) -> StylePreset:
    # Unknown styles fall back to the ID photo.
    return STYLE_PRESETS.get((key or '').strip().lower(), ID_PHOTO)
