"""
File and directory helpers
"""

import json
from pathlib import Path
from typing import List, Optional, Union, Dict, Any


def ensure_dir_exists(directory: Union[str, Path]) -> Path:
    """
    Create a directory if it does not exist

    Args:
        directory: Directory path

    Returns:
        Path object of the directory
    """
    dir_path = Path(directory)
    dir_path.mkdir(parents=True, exist_ok=True)
    return dir_path


def find_files_by_extension(directory: Union[str, Path],
                          extensions: List[str],
                          recursive: bool = True) -> List[Path]:
    """
    Find files by extension

    Args:
        directory: Directory to search
        extensions: Extensions with the leading dot, e.g. ['.wav', '.flac']
        recursive: Search subdirectories too

    Returns:
        Sorted list of matching files
    """
    directory = Path(directory)
    pattern = "**/*{}" if recursive else "*{}"
    files = set()

    for ext in extensions:
        files.update(directory.glob(pattern.format(ext)))
        files.update(directory.glob(pattern.format(ext.upper())))

    return sorted(files)


def save_json(data: Dict[str, Any], file_path: Union[str, Path],
              indent: int = 2, ensure_ascii: bool = False) -> None:
    """
    Save a dictionary to a JSON file, creating parent folders

    The file is written next to the target first and then moved in place,
    so readers never see a half-written document.

    Args:
        data: Data to save
        file_path: Destination path
        indent: JSON indentation
        ensure_ascii: Escape non-ASCII characters
    """
    file_path = Path(file_path)
    ensure_dir_exists(file_path.parent)
    tmp_path = file_path.with_suffix(file_path.suffix + ".tmp")

    with open(tmp_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=indent, ensure_ascii=ensure_ascii)
    tmp_path.replace(file_path)


def load_json(file_path: Union[str, Path]) -> Optional[Dict[str, Any]]:
    """
    Load a JSON file

    Args:
        file_path: Path to the file

    Returns:
        Parsed data, or None if the file does not exist
    """
    file_path = Path(file_path)
    if not file_path.exists():
        return None

    with open(file_path, 'r', encoding='utf-8') as f:
        return json.load(f)
