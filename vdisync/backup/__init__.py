from .runner import BackupRunner, FilePass, FileOutcome, RunReport
from .readme import render_readme, write_readme, remove_readme

__all__ = [
    'BackupRunner',
    'FilePass',
    'FileOutcome',
    'RunReport',
    'render_readme',
    'write_readme',
    'remove_readme'
]
