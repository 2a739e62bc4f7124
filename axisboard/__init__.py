"""
axisboard

Group markdown notes along one or two property axes, optionally through
transform functions, and move notes between buckets by rewriting their
frontmatter.

Quick Start:
    from axisboard import Board, MarkdownVault, QueryEngine, parse_block

    spec = parse_block('''
    source: Projects
    x: status
    y: effort
    y-transform: lambda v: v // 10 * 10
    ''')
    engine = QueryEngine(MarkdownVault("~/notes"))
    board = Board(spec, engine)
    board.cells()

CLI Usage:
    axisboard show board.md
    axisboard move board.md alpha --x Done

Environment Variables:
    AXISBOARD_VAULT    - Default vault directory for the CLI
    AXISBOARD_VERBOSE  - Set to 1 for debug logging
    AXISBOARD_HOME     - Directory for the error log (default ~/.axisboard)
"""

from .block import parse_axis_values, parse_block, expand_range
from .board import Board, DropOutcome
from .config import EngineSettings, load_or_create_settings
from .engine import QueryEngine, build_reverse_map, sort_documents
from .errors import AxisboardError, ConfigError, PersistenceError, QueryError
from .expressions import Compiled, Identity, Invalid, compile_expression, compile_transform
from .frontmatter import FrontmatterStore
from .index import ChangeIndex
from .types import AxisSpec, BoardSpec, Document, QueryResult, SortSpec, label_key
from .vault import MarkdownVault

__version__ = "0.1.0"
__all__ = [
    "AxisSpec",
    "AxisboardError",
    "Board",
    "BoardSpec",
    "ChangeIndex",
    "Compiled",
    "ConfigError",
    "Document",
    "DropOutcome",
    "EngineSettings",
    "FrontmatterStore",
    "Identity",
    "Invalid",
    "MarkdownVault",
    "PersistenceError",
    "QueryEngine",
    "QueryError",
    "QueryResult",
    "SortSpec",
    "build_reverse_map",
    "compile_expression",
    "compile_transform",
    "expand_range",
    "label_key",
    "load_or_create_settings",
    "parse_axis_values",
    "parse_block",
    "sort_documents",
]
