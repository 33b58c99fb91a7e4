import pytest

from ledger import to_currency_code


def test_three_letter_codes_are_verbatim():
    assert to_currency_code("USD") == "USD"
    assert to_currency_code(" XAU ") == "XAU"


def test_longer_codes_are_hex_encoded_at_offset_twelve():
    code = to_currency_code("CERB")

    assert len(code) == 40
    assert code == "0" * 24 + "43455242" + "0" * 8
    assert code == code.upper()


def test_eight_byte_code_fills_the_tail():
    assert to_currency_code("ABCDEFGH").endswith("4142434445464748")


@pytest.mark.parametrize("text", ["", "   ", "NINEBYTES"])
def test_invalid_codes_are_rejected(text):
    with pytest.raises(ValueError):
        to_currency_code(text)
