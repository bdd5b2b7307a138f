import pytest

from sms_manager.core.phone import (
    COUNTRY_PHONE_CONFIG,
    normalize,
    normalize_and_validate,
    unknown_country_codes,
)


def test_normalize_strips_formatting_and_prefixes():
    assert normalize('+965 9440-0999') == '96594400999'
    assert normalize('00965 (944) 00999') == '96594400999'
    assert normalize('\u200f+965 94400999\u200b') == '96594400999'
    assert normalize('') == ''
    assert normalize(None) == ''


def test_arabic_and_persian_digits_normalize_like_ascii():
    assert normalize('٩٦٥١٢٣') == normalize('965123') == '965123'
    assert normalize('۹۶۵۱۲۳') == '965123'
    assert normalize('+٩٦٥ ٩٤٤٠٠٩٩٩') == '96594400999'


def test_normalize_is_idempotent():
    for raw in ('+0096594400999', '0000965 94400999', '٠٠٩٦٥٩٤٤٠٠٩٩٩', 'tel: 965-9440-0999'):
        once = normalize(raw)
        assert normalize(once) == once


def test_unrestricted_accepts_international_lengths():
    assert normalize_and_validate('1234567890', []).valid
    assert normalize_and_validate('123456789012345', ['*']).valid
    result = normalize_and_validate('123456789', None)
    assert not result.valid
    assert 'Expected 10-15 digits, got 9' in result.error
    assert not normalize_and_validate('1234567890123456', ['*']).valid


def test_full_kuwait_number_is_accepted_unchanged():
    result = normalize_and_validate('96594400999', ['KW'])
    assert result.valid
    assert result.number == '96594400999'
    assert result.fixed is False
    assert result.country == 'KW'


def test_local_kuwait_number_gets_dial_code():
    result = normalize_and_validate('94400999', ['KW'])
    assert result.valid
    assert result.number == '96594400999'
    assert result.fixed is True


def test_duplicated_dial_code_is_repaired():
    result = normalize_and_validate('96596594400999', ['KW'])
    assert result.valid
    assert result.number == '96594400999'
    assert result.fixed is True


def test_dial_code_with_wrong_length_reports_expected_digits():
    result = normalize_and_validate('9659440099', ['KW'])
    assert not result.valid
    assert 'Expected 11 digits, got 10' in result.error
    assert result.country == 'KW'


def test_no_matching_country_lists_allowed_countries():
    result = normalize_and_validate('4412345678901', ['KW', 'SA'])
    assert not result.valid
    assert '(KW, SA)' in result.error


def test_countries_are_tried_in_order():
    # 8 local digits fits KW first even though BH has the same local length.
    result = normalize_and_validate('36001234', ['KW', 'BH'])
    assert result.number == '96536001234'
    result = normalize_and_validate('36001234', ['BH', 'KW'])
    assert result.number == '97336001234'


def test_unknown_country_codes_are_skipped():
    result = normalize_and_validate('94400999', ['ZZ', 'KW'])
    assert result.valid
    assert result.number == '96594400999'


@pytest.mark.parametrize('country', sorted(COUNTRY_PHONE_CONFIG))
def test_every_country_accepts_full_local_and_duplicated_forms(country):
    dial_code, local_length = COUNTRY_PHONE_CONFIG[country]
    local = ('5' + '1' * 20)[:local_length]
    expected = dial_code + local

    for raw in (expected, '+' + expected, '00' + expected, local, dial_code + expected):
        result = normalize_and_validate(raw, [country])
        assert result.valid, (raw, result.error)
        assert result.number == expected
        assert result.country == country

    too_long = normalize_and_validate(expected + '1', [country])
    assert not too_long.valid
    assert f'Expected {len(expected)} digits' in too_long.error


def test_unknown_country_codes_reports_unmapped_entries():
    assert unknown_country_codes(['KW', 'sa', '*', 'XX']) == ['XX']
