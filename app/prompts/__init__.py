from pathlib import Path
from string import Template


def get_prompt_text(prompt_file_name: str) -> str:
    prompt_path = Path(__file__).resolve().parent / prompt_file_name
    return prompt_path.read_text(encoding="utf-8")


def render_prompt(prompt_file_name: str, **values: str) -> str:
    """Fill ``$name`` placeholders of a prompt file."""
    return Template(get_prompt_text(prompt_file_name)).substitute(**values)
