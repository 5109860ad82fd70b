from __future__ import annotations

import copy

import pytest

from hsmsctl.core.item_builder import FALLBACK_CHAINS, ItemBuilder, build_items, normalize_type
from hsmsctl.core.model import FULL_CAPABILITIES, DataItem, EncoderCapabilities
from hsmsctl.core.placeholders import substitute


def test_ascii_item_declares_its_length() -> None:
    template = {"stream": 1, "func": 1, "items": [{"type": "A", "name": "payload", "value": "{{msg}}"}]}
    substituted = substitute(template, {"msg": "Hello"})

    items = build_items(substituted["items"])

    assert items == [DataItem(name="payload", format="A", value="Hello", size=5)]


def test_ascii_size_rules() -> None:
    items = build_items(
        [
            {"type": "A", "name": "empty", "value": ""},
            {"type": "A", "name": "sized", "value": "ab", "size": 20},
            {"type": "a", "name": "number", "value": 42},
            {"type": "A", "name": "missing"},
        ]
    )
    assert [(i.value, i.size) for i in items] == [("", 1), ("ab", 20), ("42", 2), ("", 1)]


def test_bool_array_falls_back_to_list_of_named_booleans() -> None:
    builder = ItemBuilder(FULL_CAPABILITIES.without("BOOL_ARRAY"))
    substituted = substitute(
        [{"type": "BOOL_ARRAY", "name": "flags", "value": "{{flags}}"}],
        {"flags": [True, False, True]},
    )

    [item] = builder.build(substituted)

    assert item.format == "LIST"
    assert item.name == "flags"
    assert [(c.name, c.format, c.value) for c in item.items] == [
        ("flags_0", "BOOL", True),
        ("flags_1", "BOOL", False),
        ("flags_2", "BOOL", True),
    ]


def test_bool_array_native_and_text_fallbacks() -> None:
    descriptor = [{"type": "BOOL_ARRAY", "name": "flags", "value": [1, 0, "false", "yes"]}]

    [native] = build_items(descriptor)
    assert native == DataItem(name="flags", format="BOOL_ARRAY", value=(True, False, False, True), size=4)

    [text] = ItemBuilder(EncoderCapabilities(frozenset({"A"}))).build(descriptor)
    assert text == DataItem(name="flags", format="A", value="[true,false,false,true]", size=4)

    [listed] = ItemBuilder(EncoderCapabilities(frozenset({"LIST"}))).build(descriptor)
    assert [(c.name, c.format, c.value, c.size) for c in listed.items][0] == ("flags_0", "A", "true", 1)


def test_bool_array_requires_a_list() -> None:
    [item] = build_items([{"type": "BOOL_ARRAY", "name": "flags", "value": "oops"}])
    assert item == DataItem(name="flags", format="A", value="oops", size=1)


def test_i2_prefers_i4_before_text() -> None:
    descriptor = [{"type": "I2", "name": "offset", "value": "-12"}]

    assert build_items(descriptor)[0] == DataItem(name="offset", format="I2", value=-12)

    [wide] = ItemBuilder(FULL_CAPABILITIES.without("I2")).build(descriptor)
    assert wide == DataItem(name="offset", format="I4", value=-12)

    [text] = ItemBuilder(FULL_CAPABILITIES.without("I2", "I4")).build(descriptor)
    assert text == DataItem(name="offset", format="A", value="-12", size=2)


@pytest.mark.parametrize(
    ("type_tag", "value", "expected"),
    [
        ("U2", 7, DataItem(name="n", format="A", value="7", size=2)),
        ("U4", "70000", DataItem(name="n", format="A", value="70000", size=4)),
        ("F4", 1.5, DataItem(name="n", format="A", value="1.5", size=4)),
        ("F8", 2.0, DataItem(name="n", format="A", value="2", size=8)),
        ("BOOL", True, DataItem(name="n", format="A", value="true", size=1)),
    ],
)
def test_numeric_and_bool_text_fallbacks(type_tag: str, value: object, expected: DataItem) -> None:
    builder = ItemBuilder(EncoderCapabilities(frozenset()))
    assert builder.build([{"type": type_tag, "name": "n", "value": value}]) == [expected]


def test_numeric_coercion() -> None:
    items = build_items(
        [
            {"type": "U4", "name": "a", "value": "12"},
            {"type": "F8", "name": "b", "value": "0.25"},
            {"type": "U2", "name": "c", "value": None},
            {"type": "U2", "name": "d", "value": "not-a-number"},
        ]
    )
    assert items[0] == DataItem(name="a", format="U4", value=12)
    assert items[1] == DataItem(name="b", format="F8", value=0.25)
    assert items[2] == DataItem(name="c", format="U2", value=0)
    assert items[3] == DataItem(name="d", format="A", value="not-a-number", size=12)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ([0, 16, 255], b"\x00\x10\xff"),
        ("1, 2, 255", b"\x01\x02\xff"),
        ("0A:1b ff", b"\x0a\x1b\xff"),
        ("", b""),
    ],
)
def test_binary_accepts_arrays_number_lists_and_hex(value: object, expected: bytes) -> None:
    for tag in ("B", "BIN", "bin"):
        [item] = build_items([{"type": tag, "name": "raw", "value": value}])
        assert item == DataItem(name="raw", format="B", value=expected, size=len(expected))


def test_binary_odd_hex_degrades_to_text() -> None:
    [item] = build_items([{"type": "B", "name": "raw", "value": "abc"}])
    assert item == DataItem(name="raw", format="A", value="abc", size=3)


def test_binary_out_of_range_degrades_to_text() -> None:
    [from_list] = build_items([{"type": "B", "name": "raw", "value": [1, 256]}])
    [from_csv] = build_items([{"type": "B", "name": "raw", "value": "1,300"}])
    assert from_list == DataItem(name="raw", format="A", value="[1,256]", size=7)
    assert from_csv.format == "A"


def test_binary_without_native_encoder_renders_hex() -> None:
    [item] = ItemBuilder(FULL_CAPABILITIES.without("B")).build([{"type": "BIN", "name": "raw", "value": [1, 2]}])
    assert item == DataItem(name="raw", format="A", value="0102", size=2)


def test_nested_list_is_built_recursively() -> None:
    descriptors = [
        {
            "type": "LIST",
            "name": "PARAMS",
            "value": [
                {"type": "A", "name": "CPNAME", "value": "speed"},
                {"type": "LIST", "name": "inner", "value": [{"type": "U4", "name": "CPVAL", "value": 3}]},
            ],
        }
    ]

    [item] = build_items(descriptors)

    assert item.format == "LIST"
    assert item.size == 2
    assert item.items[0] == DataItem(name="CPNAME", format="A", value="speed", size=5)
    assert item.items[1].items == (DataItem(name="CPVAL", format="U4", value=3),)
    assert item.to_dict()["value"][1]["value"][0] == {"name": "CPVAL", "format": "U4", "value": 3}


def test_unknown_type_is_ascii() -> None:
    assert normalize_type("JIS8") == "A"
    assert normalize_type(None) == "A"
    [item] = build_items([{"type": "JIS8", "name": "x", "value": "abc", "size": 10}])
    assert item == DataItem(name="x", format="A", value="abc", size=10)


def test_build_does_not_mutate_descriptors() -> None:
    descriptors = [
        {"type": "LIST", "name": "l", "value": [{"type": "BOOL_ARRAY", "name": "f", "value": [True]}]},
        {"type": "B", "name": "b", "value": [1, 2]},
    ]
    pristine = copy.deepcopy(descriptors)
    build_items(descriptors)
    assert descriptors == pristine


@pytest.mark.parametrize("type_tag", sorted(FALLBACK_CHAINS) + ["BIN", "weird", ""])
@pytest.mark.parametrize(
    "value",
    [
        None,
        "",
        "zz",
        "{{unresolved}}",
        3,
        -1.5,
        True,
        [1, "x", None],
        {"k": [1]},
        [{"type": "A"}],
        "1,,x",
        pytest.param("1" * 400, id="huge-int-text"),
        pytest.param(10**400, id="huge-int"),
        pytest.param(10**5000, id="beyond-str-digit-limit"),
    ],
)
@pytest.mark.parametrize("formats", [frozenset(), frozenset({"LIST"}), FULL_CAPABILITIES.formats])
def test_build_is_total(type_tag: str, value: object, formats: frozenset[str]) -> None:
    builder = ItemBuilder(EncoderCapabilities(formats))
    descriptors = [{"type": type_tag, "name": "x", "value": value}, "stray"]
    items = builder.build(descriptors)
    assert len(items) == 2
    assert all(isinstance(item, DataItem) for item in items)


def test_float_overflow_degrades_to_text() -> None:
    [item] = build_items([{"type": "F4", "name": "big", "value": "1" * 400}])
    assert item == DataItem(name="big", format="A", value="1" * 400, size=400)

    [native] = build_items([{"type": "U4", "name": "big", "value": 10**400}])
    assert native.format == "U4"
