from __future__ import annotations

from typing import Sequence

LATEX_DIFF_SYSTEM_INSTRUCTION = r"""# Editing format: selective latex-diff blocks

The document is shown with line numbers in the form `<n>| <text>`. The numbers
are NOT part of the document.

When the user asks for a change, explain it briefly and emit one fenced
`latex-diff` block per edit:

```latex-diff
@@ operation:<add|replace|delete> line:<n> [delete:<count>] @@
<lines to insert>
```

## Operations
- `add`: insert the body lines immediately before line `<n>`. Use line
  `<last line + 1>` to append at the end of the document.
- `replace`: remove `<count>` lines starting at line `<n>` and insert the body
  lines in their place. Always give `delete:<count>`.
- `delete`: remove `<count>` lines starting at line `<n>`. Leave the body empty.

## Rules
1. Line numbers always refer to the document as shown, before any of your
   edits. Do not renumber after earlier blocks.
2. Blocks must not overlap.
3. Body lines are inserted literally. Do not prefix them with line numbers,
   `+` or `-`.
4. Close every block with its own fence.
5. Keep edits small. Use several blocks rather than rewriting large regions.
"""

DOCUMENT_SYSTEM_INSTRUCTION = r"""# Editing format: full document

When the change touches most of the document, you may instead return the
complete new document in a single fenced `latex` block:

```latex
<complete new document>
```

Always include the entire document, not just the changes. Never combine this
format with latex-diff blocks in the same reply.
"""


def number_lines(lines: Sequence[str]) -> str:
    """Render lines with right-aligned 1-based line numbers: '  12| text'."""
    width = max(4, len(str(len(lines))))
    return "\n".join(f"{n:>{width}}| {text}" for n, text in enumerate(lines, start=1))
