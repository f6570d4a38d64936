from .community import CommunityMatrix, build_community, build_functional_community, lowest_otu_count
from .convergence import BootstrapResult, bootstrap_convergence, convergence_ratios, summarize_convergence
from .diversity import alpha_diversity, richness, shannon
from .evaluation import EvalResult, permanova
from .ordination import OrdinationResult, bray_curtis, nmds, ordinate
from .otu_filter import select_otus
from .pipeline import make_report

__version__ = "0.1.0"

__all__ = [
    "CommunityMatrix",
    "build_community",
    "build_functional_community",
    "lowest_otu_count",
    "BootstrapResult",
    "bootstrap_convergence",
    "convergence_ratios",
    "summarize_convergence",
    "alpha_diversity",
    "richness",
    "shannon",
    "EvalResult",
    "permanova",
    "OrdinationResult",
    "bray_curtis",
    "nmds",
    "ordinate",
    "select_otus",
    "make_report",
]
