from picklist.fields import (
    PICKLIST_ORDER,
    TEAM,
    FieldCatalog,
    canonical_key,
    find_identity_column,
    lookup,
)


def test_canonical_key_lowercases_and_strips_whitespace():
    assert canonical_key("Auto EPA") == "autoepa"
    assert canonical_key("  Teleop\tCoral  L4 ") == "teleopcorall4"


def test_team_number_wins_over_team():
    assert find_identity_column(["Team", "EPA", "Team Number"]) == 2
    assert find_identity_column(["team", "EPA"]) == 0
    assert find_identity_column(["Teams", "EPA"]) is None


def test_catalog_from_headers_puts_structural_fields_first():
    catalog = FieldCatalog.from_headers(["Auto EPA", "Team Number", "Picklist Order", "Rank"], 1)
    assert catalog.fields == [PICKLIST_ORDER, TEAM, "Auto EPA", "Rank"]
    assert catalog.metric_fields == ["Auto EPA"]
    assert catalog.has_rank


def test_catalog_with_and_without_computed():
    catalog = FieldCatalog.from_headers(["Team", "EPA"], 0).with_computed(["Score"])
    assert catalog.fields[-1] == "Score"
    assert catalog.is_computed("Score")
    assert "Score" in catalog
    assert catalog.without_computed().fields == [PICKLIST_ORDER, TEAM, "EPA"]


def test_catalog_from_persisted_fields_splits_computed_names():
    catalog = FieldCatalog.from_fields(["Team", "EPA", "Score"], ["Score"])
    assert catalog.base_fields == (PICKLIST_ORDER, TEAM, "EPA")
    assert catalog.computed_fields == ("Score",)


def test_lookup_falls_back_to_case_insensitive_keys():
    assert lookup({"autoepa": 3.0}, "Auto EPA") == 3.0
    assert lookup({"autoEpa": 4.0}, "Auto EPA") == 4.0
    assert lookup({}, "Auto EPA") is None
