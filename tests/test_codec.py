"""Tests for zonectl.codec module."""

from __future__ import annotations

import pytest

from zonectl.codec import (
    AttributeCodec,
    coerce_value,
    load_template,
    offset_to_line,
    parse,
    serialize,
    split_index,
)
from zonectl.exceptions import MalformedIndexError, ManagerError, ParseError, TypeMismatchError
from zonectl.models import AttributeRecord
from zonectl.validator import validate


@pytest.fixture
def codec(bhyve):
    return AttributeCodec(bhyve)


class TestSplitIndex:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("disk", ("disk", None)),
            ("disk0", ("disk", 0)),
            ("disk12", ("disk", 12)),
            ("disk05", ("disk", 5)),
            ("net-0", ("net-", 0)),
            ("123", ("123", None)),
        ],
    )
    def test_split(self, name, expected):
        assert split_index(name) == expected


class TestCoerceValue:
    def test_integer_from_text(self):
        assert coerce_value("vcpus", "integer", "4") == 4

    def test_integer_rejects_bool(self):
        with pytest.raises(TypeMismatchError, match="expected integer"):
            coerce_value("vcpus", "integer", True)

    @pytest.mark.parametrize("raw, expected", [("true", True), ("OFF", False), ("1", True), (False, False)])
    def test_boolean(self, raw, expected):
        assert coerce_value("acpi", "boolean", raw) is expected

    def test_boolean_rejects_garbage(self):
        with pytest.raises(TypeMismatchError) as excinfo:
            coerce_value("acpi", "boolean", "maybe")
        assert excinfo.value.key == "acpi"
        assert excinfo.value.expected == "boolean"

    def test_string_accepts_numbers(self):
        assert coerce_value("ram", "string", 2048) == "2048"


class TestDecode:
    def test_scalars_are_typed_from_schema(self, codec):
        config = codec.decode(
            [
                AttributeRecord("vcpus", "integer", "4"),
                AttributeRecord("acpi", "boolean", "false"),
                AttributeRecord("ram", "string", "4G"),
            ]
        )
        assert config == {"vcpus": 4, "acpi": False, "ram": "4G", "disk": []}

    def test_list_ordering_indexed_then_unsuffixed(self, codec):
        config = codec.decode(
            [
                AttributeRecord("disk", "string", "rpool/last"),
                AttributeRecord("disk5", "string", "rpool/five"),
                AttributeRecord("disk0", "string", "rpool/zero"),
            ]
        )
        assert config["disk"] == ["rpool/zero", "rpool/five", "rpool/last"]

    def test_duplicate_index_rejected(self, codec):
        with pytest.raises(MalformedIndexError) as excinfo:
            codec.decode([AttributeRecord("disk1", "string", "a"), AttributeRecord("disk01", "string", "b")])
        assert excinfo.value.key == "disk"
        assert excinfo.value.index == 1

    def test_duplicate_scalar_rejected(self, codec):
        with pytest.raises(MalformedIndexError, match="duplicate record"):
            codec.decode([AttributeRecord("ram", "string", "1G"), AttributeRecord("ram", "string", "2G")])

    def test_unknown_keys_keep_text(self, codec):
        config = codec.decode([AttributeRecord("owner", "string", "ops"), AttributeRecord("prio9", "int", "007")])
        assert config == {"owner": "ops", "prio9": "007", "disk": []}

    def test_list_without_records_is_empty(self, codec):
        assert codec.decode([AttributeRecord("bootdisk", "string", "rpool/vm/root")])["disk"] == []

    def test_bad_typed_value(self, codec):
        with pytest.raises(TypeMismatchError):
            codec.decode([AttributeRecord("vcpus", "integer", "many")])


class TestEncode:
    def test_lists_are_reindexed_without_gaps(self, codec):
        decoded = codec.decode(
            [
                AttributeRecord("disk0", "string", "a"),
                AttributeRecord("disk5", "string", "b"),
                AttributeRecord("disk", "string", "c"),
            ]
        )
        records = codec.encode(decoded)
        assert records == [
            AttributeRecord("disk0", "string", "a"),
            AttributeRecord("disk1", "string", "b"),
            AttributeRecord("disk2", "string", "c"),
        ]

    def test_sorted_by_name_and_skips_non_attributes(self, codec):
        records = codec.encode({"vcpus": 2, "acpi": True, "zonepath": "/zones/x", "device": ["/dev/zvol/rdsk/a"]})
        assert [r.name for r in records] == ["acpi", "vcpus"]
        assert records[0] == AttributeRecord("acpi", "boolean", "true")

    def test_unknown_attribute_survives_round_trip(self, codec):
        original = [AttributeRecord("prio", "integer", "007"), AttributeRecord("owner", "string", "ops")]
        config = codec.decode(original)
        assert sorted(codec.encode(config, original)) == sorted(original)

    def test_unknown_native_values(self, codec):
        records = codec.encode({"flag": True, "count": 3})
        assert records == [AttributeRecord("count", "integer", "3"), AttributeRecord("flag", "boolean", "true")]

    def test_unknown_nested_value_rejected(self, codec):
        with pytest.raises(TypeMismatchError):
            codec.encode({"nested": {"a": 1}})

    def test_collision_with_list_slot_rejected(self, codec):
        with pytest.raises(MalformedIndexError):
            codec.encode({"disk": ["a", "b"], "disk1": "c"})

    def test_round_trip_of_validated_config(self, codec, bhyve):
        config = validate(
            bhyve,
            {
                "bootdisk": "rpool/vm/root",
                "disk": ["rpool/vm/d0", "/images/d1.img"],
                "extra": "-s 9,fbuf",
                "owner": "x",
            },
        )
        attributes = {k: v for k, v in config.items() if k not in bhyve or bhyve.entries[k].resource == "attr"}
        assert codec.decode(codec.encode(config)) == attributes

    def test_round_trip_without_disks(self, codec, bhyve):
        config = validate(bhyve, {"bootdisk": "rpool/vm/root"})
        assert config["disk"] == []
        attributes = {k: v for k, v in config.items() if bhyve.entries[k].resource == "attr"}
        assert codec.decode(codec.encode(config)) == attributes


class TestText:
    def test_serialize_is_canonical(self):
        assert serialize({"b": 1, "a": [1, 2]}) == '{\n    "a": [\n        1,\n        2\n    ],\n    "b": 1\n}\n'

    def test_parse_relaxed(self):
        text = '{\n    // boot from the root volume\n    "bootdisk": "rpool/vm/root",\n    "vcpus": 2,\n}\n'
        assert parse(text) == {"bootdisk": "rpool/vm/root", "vcpus": 2}

    def test_parse_tab_indented(self):
        text = "{\n\t\"bootdisk\": \"rpool/vm/root\",\n\t\"disk\": [\n\t\t\"rpool/vm/d0\"\n\t]\n}\n"
        assert parse(text) == {"bootdisk": "rpool/vm/root", "disk": ["rpool/vm/d0"]}

    def test_parse_block_comment(self):
        assert parse('{/* sized for the build farm */ "ram": "8G"}') == {"ram": "8G"}

    def test_parse_exponent_is_a_number(self):
        assert parse('{"vcpus": 1e1}') == {"vcpus": 10.0}

    def test_parse_error_reports_line(self):
        text = '{\n    "bootdisk": "rpool/vm/root",\n    "vcpus": 2,\n    "ram": ]\n}\n'
        with pytest.raises(ParseError) as excinfo:
            parse(text)
        assert excinfo.value.line == 4
        assert "line 4" in str(excinfo.value)

    def test_parse_rejects_non_mapping(self):
        with pytest.raises(ParseError, match="mapping"):
            parse("[1, 2]")

    @pytest.mark.parametrize("text, offset, line", [("a\nb\nc", 4, 3), ("a\r\nb", 3, 2), ("abc", 0, 1)])
    def test_offset_to_line(self, text, offset, line):
        assert offset_to_line(text, offset) == line


class TestLoadTemplate:
    def test_substitutes_zone_name(self, tmp_path):
        template = tmp_path / "vm.json"
        template.write_text('{"bootdisk": "rpool/__ZONENAME__/root"}')
        assert load_template(template, "web") == {"bootdisk": "rpool/web/root"}

    def test_missing_template(self, tmp_path):
        with pytest.raises(ManagerError, match="Cannot read template"):
            load_template(tmp_path / "missing.json", "web")
