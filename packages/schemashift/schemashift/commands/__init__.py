from .apply import ExecutePendingApplyFiles, ExecuteSingleApplyFile
from .discovery import GetApplyFiles, GetChangeFiles, GetPendingApplyFiles, GetRevertFiles, compare_directories
from .info import ListEnvironments, ListVariables
from .revert import ExecuteRevertFiles, GetApplicableRevertFiles
from .validate import ValidateApplyFiles, ValidationFailure

__all__ = [
    "compare_directories",
    "ExecutePendingApplyFiles",
    "ExecuteRevertFiles",
    "ExecuteSingleApplyFile",
    "GetApplicableRevertFiles",
    "GetApplyFiles",
    "GetChangeFiles",
    "GetPendingApplyFiles",
    "GetRevertFiles",
    "ListEnvironments",
    "ListVariables",
    "ValidateApplyFiles",
    "ValidationFailure",
]
