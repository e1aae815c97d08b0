from cfr_cache.agencies import collect_title_numbers, find_agency_by_slug, iter_slugs
from cfr_cache.schemas.ecfr import Agency, CfrReference


def _tree() -> list[Agency]:
    ntia = Agency(
        name="National Telecommunications and Information Administration",
        slug="national-telecommunications-and-information-administration",
        cfr_references=[CfrReference(title=47, chapter="III"), CfrReference(title=15, chapter="XXIII")],
    )
    commerce = Agency(
        name="Department of Commerce",
        slug="commerce-department",
        cfr_references=[CfrReference(title=15, chapter="Subtitle A")],
        children=[ntia],
    )
    forest = Agency(
        name="Forest Service",
        slug="forest-service",
        cfr_references=[CfrReference(title=36, chapter="II")],
    )
    return [commerce, forest]


def test_find_nested_agency_case_insensitive() -> None:
    agency = find_agency_by_slug(_tree(), "National-Telecommunications-and-Information-Administration")
    assert agency is not None
    assert agency.cfr_references[0].title == 47


def test_find_missing_agency_returns_none() -> None:
    assert find_agency_by_slug(_tree(), "invalid-agency-slug") is None


def test_collect_title_numbers_includes_children_once() -> None:
    commerce = find_agency_by_slug(_tree(), "commerce-department")
    assert collect_title_numbers(commerce) == [15, 47]


def test_iter_slugs_is_preorder() -> None:
    assert iter_slugs(_tree()) == [
        "commerce-department",
        "national-telecommunications-and-information-administration",
        "forest-service",
    ]


def test_deep_hierarchy_does_not_recurse() -> None:
    leaf = Agency(name="leaf", slug="leaf", cfr_references=[CfrReference(title=9)])
    node = leaf
    for i in range(5000):
        node = Agency(name=f"n{i}", slug=f"n{i}", children=[node])
    assert find_agency_by_slug([node], "leaf") is leaf
    assert collect_title_numbers(node) == [9]
