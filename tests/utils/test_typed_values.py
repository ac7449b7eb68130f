import pytest

from utils.typed_values import TypedValue, decode_value, encode_value, infer_value_type


@pytest.mark.parametrize(
    "value,expected",
    [
        (None, (None, "null")),
        (True, ("true", "boolean")),
        (False, ("false", "boolean")),
        (30, ("30", "integer")),
        (1000.5, ("1000.5", "float")),
        ("30", ("30", "string")),
        ([1, "a"], ('[1, "a"]', "array")),
        ((1, 2), ("[1, 2]", "array")),
        ({"k": 1}, ('{"k": 1}', "object")),
    ],
)
def test_encode_value(value, expected):
    assert encode_value(value) == expected


def test_bool_is_not_integer():
    assert infer_value_type(True) == "boolean"
    assert infer_value_type(1) == "integer"


def test_unsupported_type():
    with pytest.raises(TypeError):
        infer_value_type(object())


def test_same_text_decodes_by_tag():
    assert decode_value("30", "integer") == TypedValue(30, "integer")
    assert decode_value("30", "string") == TypedValue("30", "string")
    assert decode_value("30", "float") == TypedValue(30.0, "float")


@pytest.mark.parametrize(
    "text,value_type",
    [("yes", "boolean"), ("x", "integer"), ('{"a": 1}', "array"), ("[]", "object"), ("1", "decimal")],
)
def test_decode_rejects_mismatched_payloads(text, value_type):
    with pytest.raises(ValueError):
        decode_value(text, value_type)
