import pytest

from replicate_images.errors import InvalidInput
from replicate_images.prompts import PromptEntry, load_prompt_file, validate_prompts

DEFAULT = "black-forest-labs/flux-schnell"


def _write(tmp_path, text):
    p = tmp_path / "prompts.yaml"
    p.write_text(text, encoding="utf-8")
    return p


def test_load_prompt_file(tmp_path):
    p = _write(tmp_path, """prompts:
  - prompt: "a cat in space"
    model: stability-ai/sdxl
  - prompt: "a dog on the moon"
""")
    entries = load_prompt_file(p)
    assert [e.prompt for e in entries] == ["a cat in space", "a dog on the moon"]
    assert entries[0].resolved_model(DEFAULT) == "stability-ai/sdxl"
    assert entries[1].resolved_model(DEFAULT) == DEFAULT


def test_load_missing_file(tmp_path):
    with pytest.raises(InvalidInput, match="failed to read file"):
        load_prompt_file(tmp_path / "missing.yaml")


def test_load_bad_yaml(tmp_path):
    with pytest.raises(InvalidInput, match="invalid YAML"):
        load_prompt_file(_write(tmp_path, "prompts: [unclosed"))


def test_load_wrong_structure(tmp_path):
    with pytest.raises(InvalidInput):
        load_prompt_file(_write(tmp_path, "prompts: just a string\n"))


def test_load_empty_file(tmp_path):
    assert load_prompt_file(_write(tmp_path, "")) == []


def test_validate_counts_empty_and_duplicate():
    entries = [
        PromptEntry(prompt="a cat"),
        PromptEntry(prompt=""),
        PromptEntry(prompt="a cat", model=DEFAULT),
        PromptEntry(prompt="a cat", model="stability-ai/sdxl"),
    ]
    result = validate_prompts(entries, DEFAULT)
    assert not result.valid
    assert result.errors == ["prompt 2: empty prompt text"]
    assert result.warnings == ["prompt 3: duplicate of prompt 1 (same prompt+model)"]
    s = result.summary
    assert (s.total_prompts, s.unique_prompts, s.duplicates, s.empty_prompts) == (4, 2, 1, 1)


def test_validate_no_prompts():
    result = validate_prompts([], DEFAULT)
    assert not result.valid
    assert result.errors == ["no prompts found in file"]


def test_validate_clean_file_is_valid():
    result = validate_prompts([PromptEntry(prompt="a"), PromptEntry(prompt="b")], DEFAULT)
    assert result.valid
    assert result.errors == [] and result.warnings == []
    assert result.summary.unique_prompts == 2
