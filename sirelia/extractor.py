"""Extraction of Mermaid diagram source from watched files."""

import logging
import re
from pathlib import PurePath
from typing import List, Optional, Union

logger = logging.getLogger(__name__)

# Files with these extensions hold a single diagram and no markdown
PURE_DIAGRAM_EXTENSIONS = ('.mmd', '.mermaid', '.mer')

FENCE_OPEN = '```mermaid'
FENCE_CLOSE = '```'

# Diagram declarations accepted on the first content line (Mermaid v11)
DIAGRAM_TYPES = (
    # Core diagram types
    'graph',
    'flowchart',
    'sequenceDiagram',
    'classDiagram',
    'stateDiagram-v2',
    'stateDiagram',
    'erDiagram',
    'entityRelationshipDiagram',
    'journey',
    'userJourney',
    'gantt',
    'pie',
    'quadrantChart',
    'requirementDiagram',
    'requirement',
    'gitGraph',
    'mindmap',
    'timeline',
    'zenuml',
    'sankey-beta',
    'sankey',

    # C4 diagrams
    'C4Context',
    'C4Container',
    'C4Component',
    'C4Dynamic',
    'C4Deployment',

    # Beta and experimental
    'xychart-beta',
    'block-beta',
    'packet-beta',
    'kanban',
    'architecture-beta',
)

# Longest keywords first so 'stateDiagram-v2' wins over 'stateDiagram'
_DIAGRAM_TYPE_PATTERN = re.compile(
    r'^(' + '|'.join(re.escape(t) for t in sorted(DIAGRAM_TYPES, key=len, reverse=True)) + r')(?![\w-])',
    re.IGNORECASE
)

_COMMENT_PREFIXES = ('//', '#', '%%')

def _is_comment_line(line: str) -> bool:
    stripped = line.strip()
    return not stripped or stripped.startswith(_COMMENT_PREFIXES)

def first_content_line(code: str) -> Optional[str]:
    """Return the first line that is not blank, a comment, or a %% directive."""
    for line in code.splitlines():
        if not _is_comment_line(line):
            return line.strip()
    return None

def detect_diagram_type(code: str) -> Optional[str]:
    """Return the declared diagram type, or None if the code declares none."""
    line = first_content_line(code or '')
    if line is None:
        return None
    match = _DIAGRAM_TYPE_PATTERN.match(line)
    if not match:
        return None
    declared = match.group(1).lower()
    for diagram_type in DIAGRAM_TYPES:
        if diagram_type.lower() == declared:
            return diagram_type
    return None

def is_valid_diagram(code: str) -> bool:
    """Check that the first content line starts with a known diagram type."""
    return detect_diagram_type(code) is not None

def validation_message(code: str) -> Optional[str]:
    """Explain why code would be rejected, or return None if it is valid."""
    if not code or not code.strip():
        return "Diagram is empty"
    if first_content_line(code) is None:
        return "No diagram type detected: the diagram only contains comments"
    if not is_valid_diagram(code):
        return (
            "No diagram type detected. The first line must declare a diagram type, "
            "e.g. 'flowchart TD', 'sequenceDiagram' or 'classDiagram'"
        )
    return None

def is_pure_diagram_file(source_path: Union[str, PurePath]) -> bool:
    return str(source_path).lower().endswith(PURE_DIAGRAM_EXTENSIONS)

def _fenced_blocks(content: str) -> List[str]:
    blocks = []
    current: Optional[List[str]] = None

    for line in content.splitlines():
        stripped = line.strip()
        if current is None:
            if stripped.startswith(FENCE_OPEN):
                current = []
            continue

        if stripped.startswith(FENCE_CLOSE):
            blocks.append('\n'.join(current).strip())
            current = None
        else:
            current.append(line)

    # An unclosed trailing fence yields nothing
    return blocks

def extract(content: str, source_path: Union[str, PurePath]) -> List[str]:
    """Extract valid Mermaid diagrams from file content.

    Pure diagram files (.mmd, .mermaid, .mer) are one candidate; anything
    else is scanned for ```mermaid fenced blocks. Candidates that do not
    declare a known diagram type are dropped.

    Args:
        content: Raw file text
        source_path: Path of the file the text came from

    Returns:
        Diagram sources in file order
    """
    if is_pure_diagram_file(source_path):
        candidate = content.strip()
        if candidate and is_valid_diagram(candidate):
            return [candidate]
        logger.debug(f"Pure diagram file has no valid diagram: {source_path}")
        return []

    diagrams = []
    for block in _fenced_blocks(content):
        if block and is_valid_diagram(block):
            diagrams.append(block)
        else:
            logger.debug(f"Skipping fenced block without a diagram type in {source_path}")
    return diagrams
