from services.prompts import (
    GENERATED_TITLE_KEY,
    build_description_prompt,
    build_title_prompt,
    row_context,
)


def test_row_context_skips_blank_headers():
    assert row_context(["id", "", "title", None], ["1", "x", "Shoe"]) == {
        "id": "1",
        "title": "Shoe",
    }


def test_build_title_prompt_appends_compact_context():
    prompt = build_title_prompt("Describe:\n", {"title": "Café Shoe", "size": 10})

    assert prompt == 'Describe:\nContext: {"title":"Café Shoe","size":10}\n\n'


def test_build_description_prompt_injects_title_without_mutating_row():
    data = {"title": "Shoe"}

    prompt = build_description_prompt("Write:\n", data, "Red Shoe 10")

    assert prompt == 'Write:\nContext: {"title":"Shoe","Generated Title":"Red Shoe 10"}\n\n'
    assert GENERATED_TITLE_KEY not in data
