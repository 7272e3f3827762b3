"""Knowledge-base articles injected into the coach's system prompt."""

from pathlib import Path


def load_wiki_articles(directory: Path) -> list[str]:
    """Read every .md file in directory, ordered by file name."""
    files = sorted(
        (p for p in Path(directory).iterdir() if p.is_file() and p.suffix == ".md"),
        key=lambda p: p.name,
    )
    return [p.read_text(encoding="utf-8") for p in files]
