"""Tests for diagram extraction and validation."""

import pytest

from sirelia.extractor import (
    detect_diagram_type,
    extract,
    first_content_line,
    is_pure_diagram_file,
    is_valid_diagram,
    validation_message,
)

MARKDOWN = """# Notes

```mermaid
flowchart TD
A-->B
```

Some prose about the diagram.
"""

def test_markdown_block_followed_by_prose():
    """Test markdown block followed by prose."""
    assert extract(MARKDOWN, "/tmp/notes.md") == ["flowchart TD\nA-->B"]

def test_extraction_is_idempotent():
    """Test extraction is idempotent."""
    assert extract(MARKDOWN, "notes.md") == extract(MARKDOWN, "notes.md")

def test_blocks_are_returned_in_file_order():
    """Test blocks are returned in file order."""
    content = (
        "```mermaid\nsequenceDiagram\nA->>B: hi\n```\n"
        "text\n"
        "```mermaid\nclassDiagram\nclass Foo\n```\n"
        "```mermaid\npie\n\"a\": 1\n```\n"
    )
    assert extract(content, "doc.md") == [
        "sequenceDiagram\nA->>B: hi",
        "classDiagram\nclass Foo",
        "pie\n\"a\": 1",
    ]

def test_unclosed_trailing_fence_yields_nothing():
    """Test unclosed trailing fence yields nothing."""
    content = "```mermaid\ngraph LR\nA-->B\n```\n\n```mermaid\ngraph LR\nC-->D\n"
    assert extract(content, "doc.md") == ["graph LR\nA-->B"]

def test_other_fences_are_ignored():
    """Test other fences are ignored."""
    content = "```python\nprint('graph TD')\n```\n```mermaid\ngantt\ntitle Plan\n```\n"
    assert extract(content, "doc.md") == ["gantt\ntitle Plan"]

def test_fence_markers_may_be_indented():
    """Test fence markers may be indented."""
    content = "  ```mermaid\n  mindmap\n    root\n  ```\n"
    assert extract(content, "doc.md") == ["mindmap\n    root"]

def test_prose_block_is_excluded():
    """Test prose block is excluded."""
    content = "```mermaid\nThis is just a paragraph.\n```\n```mermaid\nerDiagram\nA ||--o{ B : has\n```\n"
    assert extract(content, "doc.md") == ["erDiagram\nA ||--o{ B : has"]

def test_empty_block_is_excluded():
    """Test empty block is excluded."""
    assert extract("```mermaid\n\n```\n", "doc.md") == []

def test_pure_diagram_file_is_a_single_candidate():
    """Test pure diagram file is a single candidate."""
    content = "\n\nstateDiagram-v2\n  [*] --> Idle\n\n"
    assert extract(content, "/work/.sirelia.mmd") == ["stateDiagram-v2\n  [*] --> Idle"]

def test_pure_diagram_file_is_not_scanned_for_fences():
    """Test pure diagram file is not scanned for fences."""
    content = "```mermaid\ngraph TD\nA-->B\n```"
    assert extract(content, "diagram.mermaid") == []

def test_invalid_pure_diagram_file_yields_nothing():
    """Test invalid pure diagram file yields nothing."""
    assert extract("hello world", "diagram.mer") == []
    assert extract("   ", "diagram.mmd") == []

@pytest.mark.parametrize("path,expected", [
    ("a.mmd", True),
    ("a.MERMAID", True),
    ("a.mer", True),
    ("a.md", False),
    ("a.mdd", False),
    ("mmd", False),
])
def test_is_pure_diagram_file(path, expected):
    """Test is pure diagram file."""
    assert is_pure_diagram_file(path) is expected

def test_comment_lines_are_skipped_before_the_declaration():
    """Test comment lines are skipped before the declaration."""
    code = "%%{init: {'theme': 'dark'}}%%\n// note\n# heading\n%% comment\n\nflowchart LR\nA-->B"
    assert first_content_line(code) == "flowchart LR"
    assert detect_diagram_type(code) == "flowchart"

def test_declaration_must_start_the_first_content_line():
    """Test declaration must start the first content line."""
    assert not is_valid_diagram("Here is a flowchart TD\nA-->B")
    assert not is_valid_diagram("A-->B\nflowchart TD")

def test_declaration_is_case_insensitive():
    """Test declaration is case insensitive."""
    assert detect_diagram_type("GRAPH TD\nA-->B") == "graph"
    assert detect_diagram_type("gitgraph\ncommit") == "gitGraph"

def test_longest_keyword_wins():
    """Test longest keyword wins."""
    assert detect_diagram_type("stateDiagram-v2\n[*] --> A") == "stateDiagram-v2"
    assert detect_diagram_type("sankey-beta\na,b,1") == "sankey-beta"

def test_keyword_must_be_a_whole_word():
    """Test keyword must be a whole word."""
    assert detect_diagram_type("graphical nonsense") is None
    assert detect_diagram_type("pies are tasty") is None

def test_only_comments_is_invalid():
    """Test only comments is invalid."""
    assert not is_valid_diagram("%% nothing\n// here")

def test_validation_message():
    """Test validation message."""
    assert validation_message("sequenceDiagram\nA->>B: hi") is None
    assert validation_message("") == "Diagram is empty"
    assert validation_message("%% just a comment").startswith("No diagram type detected")
    assert validation_message("hello").startswith("No diagram type detected")
