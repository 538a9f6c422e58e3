"""Tests for base stack normalization."""

import pytest

from layerscope.exceptions import (
    BaseLayerNotFoundError,
    LengthMismatchError,
    TreeMergeError,
)
from layerscope.filetree import FileInfo, FileTree
from layerscope.models import AnalysisResult, Inefficiency
from layerscope.normalize import collapse_base_stack, normalize_stack
from tests.helpers import make_layers, make_tree, make_trees


def test_folds_base_stack_into_first_layer():
    """Sizes [10, 20, 30] with the base top at index 1 give two layers of 30."""
    layers = make_layers([10, 20, 30])
    trees = make_trees(3)

    new_layers, new_trees = normalize_stack(layers, trees, "sha256:layer1")

    assert [layer.size for layer in new_layers] == [30, 30]
    assert [layer.digest for layer in new_layers] == ["sha256:layer0", "sha256:layer2"]
    assert len(new_layers) == len(new_trees)


def test_merged_tree_contains_every_base_layer():
    layers = make_layers([10, 20, 30])
    trees = make_trees(3)

    _, new_trees = normalize_stack(layers, trees, "sha256:layer1")

    assert "/layer0/file" in new_trees[0]
    assert "/layer1/file" in new_trees[0]
    assert "/layer2/file" not in new_trees[0]
    assert new_trees[1] is trees[2]


def test_inputs_are_not_mutated():
    layers = make_layers([10, 20, 30])
    trees = make_trees(3)

    normalize_stack(layers, trees, "sha256:layer1")

    assert [layer.size for layer in layers] == [10, 20, 30]
    assert "/layer1/file" not in trees[0]


def test_indexes_are_renumbered():
    layers = make_layers([1, 2, 3, 4, 5])
    trees = make_trees(5)

    new_layers, _ = normalize_stack(layers, trees, "sha256:layer2")

    assert [layer.index for layer in new_layers] == [0, 1, 2]
    assert [layer.command for layer in new_layers] == [
        "RUN step 0",
        "RUN step 3",
        "RUN step 4",
    ]


def test_first_size_is_sum_through_base_top():
    sizes = [7, 11, 13, 17, 19]
    layers = make_layers(sizes)
    trees = make_trees(5)

    for top in range(5):
        new_layers, new_trees = normalize_stack(layers, trees, f"sha256:layer{top}")
        assert new_layers[0].size == sum(sizes[: top + 1])
        assert len(new_layers) == 5 - top
        assert len(new_layers) == len(new_trees)


def test_base_top_on_first_layer_is_noop():
    layers = make_layers([10, 20, 30])
    trees = make_trees(3)

    new_layers, new_trees = normalize_stack(layers, trees, "sha256:layer0")

    assert new_layers == layers
    assert [tree.paths() for tree in new_trees] == [tree.paths() for tree in trees]


def test_single_layer_is_unchanged():
    layers = make_layers([42])
    trees = make_trees(1)

    new_layers, new_trees = normalize_stack(layers, trees, "sha256:layer0")

    assert new_layers == layers
    assert len(new_trees) == 1


def test_empty_input():
    assert normalize_stack([], [], "sha256:any") == ([], [])


def test_length_mismatch_fails_without_output():
    """2 layers with 3 trees fails before producing anything."""
    layers = make_layers([10, 20])
    trees = make_trees(3)

    with pytest.raises(LengthMismatchError) as exc_info:
        normalize_stack(layers, trees, "sha256:layer0")

    assert exc_info.value.layer_count == 2
    assert exc_info.value.tree_count == 3


def test_missing_base_top_is_an_error_by_default():
    layers = make_layers([10, 20, 30])

    with pytest.raises(BaseLayerNotFoundError):
        normalize_stack(layers, make_trees(3), "sha256:missing")


def test_missing_base_top_folds_everything_when_not_strict():
    layers = make_layers([10, 20, 30])

    new_layers, new_trees = normalize_stack(
        layers, make_trees(3), "sha256:missing", strict=False
    )

    assert len(new_layers) == 1
    assert len(new_trees) == 1
    assert new_layers[0].size == 60


def test_merged_layer_collects_names():
    layers = make_layers([1, 2, 3])
    layers[0].names = ["base:latest"]
    layers[1].names = ["run:bionic", "base:latest"]

    new_layers, _ = normalize_stack(layers, make_trees(3), "sha256:layer1")

    assert new_layers[0].names == ["base:latest", "run:bionic"]


def test_tree_merge_failure_is_fatal():
    layers = make_layers([1, 2, 3])
    trees = [
        make_tree({"/etc": 5}),
        make_tree({"/etc/passwd": 1}),
        make_tree({"/app": 1}),
    ]

    with pytest.raises(TreeMergeError):
        normalize_stack(layers, trees, "sha256:layer1")


def test_collapse_base_stack_keeps_metrics():
    layers = make_layers([10, 20, 30])
    analysis = AnalysisResult(
        layers=layers,
        ref_trees=make_trees(3),
        efficiency=0.75,
        size_bytes=60,
        wasted_bytes=5,
        inefficiencies=[Inefficiency("/x", 5, 2)],
        image="test/app:latest",
    )

    collapsed = collapse_base_stack(analysis, "sha256:layer1")

    assert [layer.size for layer in collapsed.layers] == [30, 30]
    assert len(collapsed.ref_trees) == 2
    assert collapsed.efficiency == 0.75
    assert collapsed.size_bytes == 60
    assert collapsed.wasted_bytes == 5
    assert collapsed.inefficiencies == [Inefficiency("/x", 5, 2)]
    assert collapsed.image == "test/app:latest"
    assert len(analysis.layers) == 3


def test_whiteouts_apply_while_folding():
    layers = make_layers([1, 1, 1])
    trees = [
        FileTree([FileInfo("/tmp/cache", size=100), FileInfo("/bin/sh", size=5)]),
        FileTree(whiteouts=["/tmp/cache"]),
        make_tree({"/app/main": 3}),
    ]

    _, new_trees = normalize_stack(layers, trees, "sha256:layer1")

    assert "/tmp/cache" not in new_trees[0]
    assert "/bin/sh" in new_trees[0]
