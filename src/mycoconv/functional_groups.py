"""
Centralized mapping of fungal functional groups to OTU annotation flags.

- FUNCTIONAL_GROUP_FLAGS maps each analysed functional group to the boolean
  column of the (normalized) OTU annotation table that marks membership.
- analysis_groups() lists the subsets run by the report: the whole community
  (WHOLE_COMMUNITY, no flag) followed by every functional group.
"""

# group name -> annotation flag column
FUNCTIONAL_GROUP_FLAGS = {
    "symbiotroph": "symbiotroph",
    "ectomycorrhizal": "ectomycorrhizal",
    "arbuscular_mycorrhizal": "arbuscular_mycorrhizal",
}

WHOLE_COMMUNITY = "all"


def get_group_flag(group: str) -> str:
    """Return the annotation flag column for a functional group name."""
    try:
        return FUNCTIONAL_GROUP_FLAGS[group]
    except KeyError:
        raise KeyError(
            f"Unknown functional group {group!r}. Known groups: {sorted(FUNCTIONAL_GROUP_FLAGS)}"
        ) from None


def analysis_groups() -> list:
    """Names of the subsets analysed by the report, whole community first."""
    return [WHOLE_COMMUNITY] + list(FUNCTIONAL_GROUP_FLAGS)
