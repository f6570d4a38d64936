import numpy as np
import pandas as pd
import pytest
from pandera.errors import SchemaErrors

from mycoconv import cli
from mycoconv.data_io import load_interim
from mycoconv.pipeline import load_abundance, load_annotations, make_report

OTUS = [f"OTU_{i}" for i in range(1, 11)]
SITES = ["Arid", "Intermediate", "Mesic"]


def _write_inputs(directory):
    rng = np.random.default_rng(2024)
    trees = [f"t{i}" for i in range(1, 10)]
    sites = np.repeat(SITES, 3)

    soil = pd.DataFrame({"site": sites})
    for k, var in enumerate(["N_p", "C_p", "P", "OM", "TEC", "NO3_ppm", "NH4_ppm", "GravWContent", "pH"]):
        soil[var] = 5.0 + k + np.repeat([0.0, 1.0, 2.0], 3) + rng.normal(0, 0.2, 9)
    soil.to_csv(directory / "soil_chemistry.csv", index=False)

    pd.DataFrame({
        "OTU_ID": OTUS,
        "confidence_ranking": ["Probable"] * 4 + ["Highly Probable"] * 4 + ["Possible", "-"],
        "notes": [""] * 8 + ["Unassigned", ""],
        "symbiotroph": ["TRUE"] * 5 + ["FALSE"] * 5,
        "ectomycorrhizal": ["TRUE"] * 4 + ["FALSE"] * 6,
        "arbuscular_mycorrhizal": ["FALSE"] * 10,
    }).to_csv(directory / "otu_annotations.csv", index=False)

    counts = rng.integers(1, 30, size=(9, len(OTUS)))
    for i in range(9):
        # vary richness within each site, OTU_1 keeps every tree non-empty
        counts[i, 1:1 + i % 3] = 0
        counts[i, 5:5 + i % 3] = 0
    abundance = pd.DataFrame(counts, columns=OTUS)
    abundance.insert(0, "site", sites)
    abundance.insert(0, "tree", trees)
    abundance.to_csv(directory / "fungal_abundance.csv", index=False)

    pd.DataFrame({
        "OTU_ID": ["OTU_1", "OTU_2", "OTU_3", "OTU_4", "OTU_5"],
        "trait": ["exploration_type"] * 5,
        "type": ["contact", "contact", "long_distance", "medium_distance", "long_distance"],
    }).to_csv(directory / "otu_traits.csv", index=False)

    pd.DataFrame({
        "tree": ["t1", "t1", "t4", "t4"],
        "site": ["arid", "arid", "intermediate", "intermediate"],
        "comparison": ["arid-intermediate", "arid-mesic", "arid-intermediate", "intermediate-mesic"],
        "ratio": [2.0, 3.0, 4.0, None],
        "resample": [1, 1, 1, 1],
    }).to_csv(directory / "bootstrap_results.csv", index=False)


@pytest.fixture
def data_dir(tmp_path):
    raw = tmp_path / "raw"
    raw.mkdir()
    _write_inputs(raw)
    return raw


def test_loaders_harmonize_inputs(data_dir):
    ann = load_annotations(data_dir / "otu_annotations.csv")
    assert ann["ectomycorrhizal"].dtype == bool
    ab = load_abundance(data_dir / "fungal_abundance.csv", otu_ids=ann["OTU_ID"])
    assert ab["tree"].tolist()[:2] == ["T1", "T2"]
    assert list(ab["site"].cat.categories) == ["arid", "intermediate", "mesic"]
    assert set(OTUS) <= set(ab.columns)


def _rewrite_otu_1(data_dir, values):
    path = data_dir / "fungal_abundance.csv"
    ab = pd.read_csv(path, dtype=str, keep_default_na=False)
    ab.loc[:len(values) - 1, "OTU_1"] = values
    ab.to_csv(path, index=False)
    return path


def test_load_abundance_blank_count_is_zero(data_dir):
    path = _rewrite_otu_1(data_dir, ["5", ""])
    ab = load_abundance(path, otu_ids=OTUS)
    assert ab["OTU_1"].tolist()[:2] == [5.0, 0.0]


def test_load_abundance_rejects_text_counts(data_dir):
    path = _rewrite_otu_1(data_dir, ["5", "abc", "n/a?"])
    with pytest.raises(ValueError, match="OTU_1"):
        load_abundance(path, otu_ids=OTUS)


def test_load_abundance_rejects_fractional_counts(data_dir):
    path = _rewrite_otu_1(data_dir, ["5", "2.5"])
    with pytest.raises(SchemaErrors):
        load_abundance(path, otu_ids=OTUS)


def test_make_report_end_to_end(data_dir, tmp_path):
    out, interim = tmp_path / "out", tmp_path / "interim"
    reports = make_report(data_dir, out, interim, resamples=2, permutations=19, seed=3)

    # arbuscular mycorrhizal group has no OTUs and is skipped
    assert set(reports["nmds_stress"]["group"]) == {"all", "symbiotroph", "ectomycorrhizal"}
    assert set(reports["permanova"]["analysis"]) == {"soil", "all", "symbiotroph", "ectomycorrhizal"}

    summary = reports["convergence_summary"]
    assert len(summary) == 3 * 3
    # every comparison covers 6 trees in each of 2 resamples
    assert ((summary["n"] + summary["n_undefined"]) == 12).all()
    assert len(reports["bootstrap_diagnostics"]) == 3 * 2

    assert len(reports["soil_anova"]) == 9
    assert len(reports["trait_chi_square"]) == 3
    assert (out / "convergence_summary.csv").exists()
    assert (interim / "bootstrap_records.parquet").exists()
    assert (interim / "nmds_coordinates.parquet").exists()
    assert (interim / "bootstrap_centroids.parquet").exists()

    areas = reports["site_centroid_summary"]
    assert len(areas) == 3 * 3
    assert (areas["n_trees"] == 3).all()
    assert (areas["area_mean"] >= 0).all()

    records = load_interim("bootstrap_records.parquet", interim)
    assert len(records) == 3 * 2 * 9 * 2
    assert set(records["group"]) == {"all", "symbiotroph", "ectomycorrhizal"}


def test_make_report_replay(data_dir, tmp_path):
    reports = make_report(data_dir, tmp_path / "out", tmp_path / "interim",
                          permutations=9, seed=1, replay=True)
    summary = reports["convergence_summary"].set_index("comparison")
    assert (summary["group"] == "precomputed").all()
    assert summary.loc["arid-intermediate", "mean"] == pytest.approx(3.0)
    assert summary.loc["intermediate-mesic", "n_undefined"] == 1
    assert "bootstrap_diagnostics" not in reports


def test_cli_runs_report(data_dir, tmp_path, capsys):
    out = tmp_path / "cli_out"
    cli.main([
        "--data-dir", str(data_dir), "--outdir", str(out), "--interim-dir", str(tmp_path / "cli_interim"),
        "--resamples", "1", "--permutations", "9", "--seed", "0",
    ])
    assert (out / "diversity_summary.csv").exists()
    assert "CONVERGENCE SUMMARY" in capsys.readouterr().out
