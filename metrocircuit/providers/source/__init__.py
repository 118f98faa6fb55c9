"""Document source adapters."""

from metrocircuit.providers.source.local_folder_source import LocalFolderSource

__all__ = ["LocalFolderSource"]
