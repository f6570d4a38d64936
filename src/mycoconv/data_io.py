from __future__ import annotations
from pathlib import Path
import pandas as pd
from .config import INTERIM, PROC

def save_interim(df: pd.DataFrame, name: str, directory: Path | None = None) -> Path:
    """
    Save a DataFrame to the interim data directory as a Parquet file.

    Args:
        df: The DataFrame to save
        name: The filename (without path) for the saved file
        directory: Override for the interim directory (optional)

    Returns:
        Path: The full path to the saved file
    """
    directory = Path(directory) if directory is not None else INTERIM
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    df.to_parquet(path, index=False)
    return path

def load_interim(name: str, directory: Path | None = None) -> pd.DataFrame:
    """
    Load a DataFrame from the interim data directory.

    Args:
        name: The filename (without path) to load
        directory: Override for the interim directory (optional)

    Returns:
        pd.DataFrame: The loaded DataFrame
    """
    directory = Path(directory) if directory is not None else INTERIM
    return pd.read_parquet(directory / name)

def save_report(df: pd.DataFrame, name: str, directory: Path | None = None, index: bool = False) -> Path:
    """Write a summary table as CSV to the processed directory and return its path."""
    directory = Path(directory) if directory is not None else PROC
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / name
    df.to_csv(path, index=index)
    return path
