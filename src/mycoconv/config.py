from __future__ import annotations
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
DATA = ROOT / "data"
RAW = DATA / "raw"
INTERIM = DATA / "interim"
PROC = DATA / "processed"

# raw CSV filenames (adjust to yours)
RAW_SOIL_CSV = RAW / "soil_chemistry.csv"
RAW_ANNOTATION_CSV = RAW / "otu_annotations.csv"
RAW_ABUNDANCE_CSV = RAW / "fungal_abundance.csv"
RAW_TRAITS_CSV = RAW / "otu_traits.csv"
RAW_BOOTSTRAP_CSV = RAW / "bootstrap_results.csv"

# keys
KEYS = ["tree"]  # one row per sampled tree
SITE_COL = "site"
OTU_ID_COL = "OTU_ID"

# sampling sites, ordered along the aridity gradient
SITES = ("arid", "intermediate", "mesic")

SOIL_VARIABLES = [
    "N_p", "C_p", "P", "OM", "TEC", "NO3_ppm", "NH4_ppm", "GravWContent", "pH",
]

# OTU annotation (FUNGuild-style)
CONFIDENCE_LEVELS = ["Possible", "Probable", "Highly Probable"]
UNRESOLVED_MARKER = "-"
EXCLUDED_CONFIDENCE = (UNRESOLVED_MARKER, "Possible")
UNASSIGNED_NOTE = "Unassigned"

# ordination / bootstrap
DEFAULT_RESAMPLES = 1000
NMDS_MAX_ITER = 30
NMDS_N_INIT = 4
NMDS_EPS = 1e-3
ZERO_DISTANCE_ADJUSTMENT = 1e-4

# tests
DEFAULT_PERMUTATIONS = 999
DEFAULT_ALPHA = 0.05
