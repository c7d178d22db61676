"""Core transformation passes."""

from modsplit.core.evaluator import evaluate_condition, fold_conditions
from modsplit.core.extractor import ModuleArtifact, extract_modules
from modsplit.core.parser import ParseError, parse_javascript
from modsplit.core.pipeline import PipelineResult, process_source, write_outputs
from modsplit.core.reorderer import reorder_switches
from modsplit.core.rewriter import Replacement, apply_replacements, merge_replacements

__all__ = [
    "evaluate_condition",
    "fold_conditions",
    "extract_modules",
    "parse_javascript",
    "process_source",
    "write_outputs",
    "reorder_switches",
    "apply_replacements",
    "merge_replacements",
    "ModuleArtifact",
    "ParseError",
    "PipelineResult",
    "Replacement",
]
