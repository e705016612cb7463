import pytest

from services.feed_parser import (
    MissingSegmentError,
    ResponseParseError,
    format_template,
    parse_title_response,
    split_segment,
)


RESPONSE = (
    "product attribute keys in original title:color|\n"
    "product category:Footwear\n"
    "product attribute keys:color|size|\n"
    "product attribute values:Red|10|"
)


def test_parse_title_response_splits_four_segments():
    parsed = parse_title_response(RESPONSE)

    assert parsed.original_attributes == ["color"]
    assert parsed.category == "Footwear"
    assert parsed.generated_attributes == ["color", "size"]
    assert parsed.generated_values == ["Red", "10"]
    assert parsed.original_template == "<color>"
    assert parsed.generated_template == "<color> <size>"


def test_parse_title_response_trims_pieces_and_drops_empty_ones():
    response = (
        "product attribute keys in original title: brand | | color\n"
        "product category:  Apparel > Shoes  \n"
        "product attribute keys: brand|| color |size\n"
        "product attribute values: Acme | Red|| 10 |"
    )

    parsed = parse_title_response(response)

    assert parsed.original_attributes == ["brand", "color"]
    assert parsed.category == "Apparel > Shoes"
    assert parsed.generated_attributes == ["brand", "color", "size"]
    assert parsed.generated_values == ["Acme", "Red", "10"]


def test_parse_title_response_ignores_markdown_fences():
    parsed = parse_title_response(f"```\n{RESPONSE}\n```")

    assert parsed.category == "Footwear"
    assert parsed.generated_values == ["Red", "10"]


def test_parse_title_response_keeps_typographic_quotes_in_values():
    response = (
        "product attribute keys in original title:size|\n"
        "product category:Garden\n"
        "product attribute keys:size|material|\n"
        "product attribute values:12” Stone|‘Terra’ Clay|"
    )

    parsed = parse_title_response(response)

    assert parsed.generated_values == ["12” Stone", "‘Terra’ Clay"]


@pytest.mark.parametrize(
    "response, position, segment",
    [
        ("product attribute keys in original title:color|", 2, "category"),
        (
            "product attribute keys in original title:color|\nproduct category:Footwear",
            3,
            "generated attribute keys",
        ),
        (
            "product attribute keys in original title:color|\n"
            "product category:Footwear\n"
            "product attribute keys:color|size|",
            4,
            "generated attribute values",
        ),
    ],
)
def test_parse_title_response_reports_missing_segment(response, position, segment):
    with pytest.raises(MissingSegmentError) as excinfo:
        parse_title_response(response)

    assert excinfo.value.position == position
    assert excinfo.value.segment == segment
    assert isinstance(excinfo.value, ResponseParseError)


def test_split_segment_only_strips_the_first_prefix():
    assert split_segment("keys: a|keys: b", "keys:") == ["a", "keys: b"]


def test_format_template_wraps_each_key():
    assert format_template(["brand", " color "]) == "<brand> <color>"
    assert format_template([]) == ""
