"""
Utility Modules

Common utilities for file operations and system interaction.
"""

from .atomic_write import (
    atomic_write_text,
    atomic_write_json,
    atomic_write_bytes,
    replace_directory,
)
from .command import CommandResult, CommandRunner, format_argv
from .system_files import (
    write_system_file,
    set_environment_variable,
    remove_system_path,
    replace_system_file,
    replace_system_tree,
)

__all__ = [
    "atomic_write_text",
    "atomic_write_json",
    "atomic_write_bytes",
    "replace_directory",
    "CommandResult",
    "CommandRunner",
    "format_argv",
    "write_system_file",
    "set_environment_variable",
    "remove_system_path",
    "replace_system_file",
    "replace_system_tree",
]
