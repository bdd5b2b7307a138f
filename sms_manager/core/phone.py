from __future__ import annotations

from dataclasses import dataclass
import logging
import re


logger = logging.getLogger(__name__)

WILDCARD = '*'
MIN_INTERNATIONAL_LENGTH = 10
MAX_INTERNATIONAL_LENGTH = 15

# ISO country -> (dial code, local digits after the dial code)
COUNTRY_PHONE_CONFIG: dict[str, tuple[str, int]] = {
    'KW': ('965', 8),
    'SA': ('966', 9),
    'AE': ('971', 9),
    'BH': ('973', 8),
    'QA': ('974', 8),
    'OM': ('968', 8),
    'EG': ('20', 10),
    'JO': ('962', 9),
    'LB': ('961', 8),
    'IQ': ('964', 10),
}

# Zero-width space/joiners, BOM, NBSP, word joiner, bidi embedding/override marks.
_INVISIBLE_RE = re.compile('[\u200b-\u200d\ufeff\u00a0\u2060\u202a-\u202e]')
_NON_DIGIT_RE = re.compile(r'[^0-9]')
_DIGIT_TRANSLATION = str.maketrans(
    '٠١٢٣٤٥٦٧٨٩'
    '۰۱۲۳۴۵۶۷۸۹',
    '01234567890123456789',
)


@dataclass(frozen=True)
class PhoneResult:
    number: str
    valid: bool
    error: str | None = None
    fixed: bool = False
    country: str | None = None


def normalize(raw: str) -> str:
    """Reduce user input to a bare digit string.

    Invisible formatting marks are dropped, Arabic-Indic and Persian digits
    become ASCII, every other non-digit goes, and an international `00`
    prefix is removed. Length is not checked here.
    """
    number = _INVISIBLE_RE.sub('', str(raw or ''))
    number = number.translate(_DIGIT_TRANSLATION)
    number = number.lstrip('+')
    number = _NON_DIGIT_RE.sub('', number)
    while number.startswith('00'):
        number = number[2:]
    return number


def is_unrestricted(allowed_countries: list[str] | None) -> bool:
    return not allowed_countries or WILDCARD in allowed_countries


def normalize_and_validate(raw: str, allowed_countries: list[str] | None) -> PhoneResult:
    """Normalize `raw` and check it against the allowed dial codes.

    Repairs the two common copy/paste mistakes: a dial code typed twice and
    a local number missing its dial code. Countries are tried in the order
    given; the first one whose dial code or local length matches decides.
    """
    number = normalize(raw)
    original = number
    fixed = False

    if is_unrestricted(allowed_countries):
        if MIN_INTERNATIONAL_LENGTH <= len(number) <= MAX_INTERNATIONAL_LENGTH:
            return PhoneResult(number=number, valid=True)
        return PhoneResult(
            number=number,
            valid=False,
            error=(
                f'Invalid phone number length. Expected {MIN_INTERNATIONAL_LENGTH}-'
                f'{MAX_INTERNATIONAL_LENGTH} digits, got {len(number)}'
            ),
        )

    for country in allowed_countries:
        config = COUNTRY_PHONE_CONFIG.get(str(country).upper())
        if config is None:
            continue
        dial_code, local_length = config
        expected_length = len(dial_code) + local_length

        if number.startswith(dial_code + dial_code):
            number = number[len(dial_code):]
            fixed = True
            logger.info(
                'phone_number_fixed reason=duplicate_dial_code',
                extra={'original': original, 'fixed': number, 'country': country},
            )

        if number.startswith(dial_code):
            if len(number) == expected_length:
                return PhoneResult(number=number, valid=True, fixed=fixed, country=country)
            return PhoneResult(
                number=number,
                valid=False,
                error=f'Invalid phone number length for {country}. Expected {expected_length} digits, got {len(number)}',
                fixed=fixed,
                country=country,
            )

        if len(number) == local_length:
            number = dial_code + number
            logger.info(
                'phone_number_fixed reason=missing_dial_code',
                extra={'original': original, 'fixed': number, 'country': country},
            )
            return PhoneResult(number=number, valid=True, fixed=True, country=country)

    country_list = ', '.join(allowed_countries)
    return PhoneResult(
        number=number,
        valid=False,
        error=f'Phone number format does not match any allowed country ({country_list}). Number: {number}',
        fixed=fixed,
    )


def unknown_country_codes(codes: list[str]) -> list[str]:
    return [c for c in codes if c != WILDCARD and str(c).upper() not in COUNTRY_PHONE_CONFIG]
