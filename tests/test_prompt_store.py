from __future__ import annotations

import pytest

from pollreport.services.prompt_store import render_prompt


def test_render_prompt_joins_line_lists():
    text = render_prompt("refinement.user_prompt", question="Who leads the polls?")

    assert text.startswith('User question: "Who leads the polls?"\n')
    assert "primary_query" in text


def test_render_prompt_substitutes_nested_values():
    text = render_prompt("report.article_section", articles="SOURCE: https://a.com\n\nbody")

    assert text == "PRIMARY SOURCE - FULL ARTICLE TEXTS:\nSOURCE: https://a.com\n\nbody"


def test_render_prompt_unknown_key():
    with pytest.raises(KeyError, match="Prompt key not found"):
        render_prompt("report.nope")


def test_render_prompt_missing_value():
    with pytest.raises(KeyError, match="Missing template value 'question'"):
        render_prompt("refinement.user_prompt")


def test_render_prompt_rejects_non_string_nodes():
    with pytest.raises(TypeError):
        render_prompt("report.format")
