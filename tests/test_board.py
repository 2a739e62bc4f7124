"""
Tests for board layout and drop resolution.
"""

import pytest

from axisboard.block import parse_block
from axisboard.board import Board, sort_labels
from axisboard.config import EngineSettings
from axisboard.frontmatter import FrontmatterStore, parse_frontmatter
from axisboard.index import ChangeIndex


def board_for(engine, block, **kwargs):
    return Board(parse_block(block), engine, **kwargs)


class TestLayout:
    """Domains, cells and the unassigned lane."""

    def test_discovered_domains(self, engine):
        board = board_for(engine, "source: Projects\nx: status\ny: priority")
        assert board.x_domain == ["Doing", "Done", "Todo"]
        assert board.y_domain == ["1", "2", "3"]

    def test_numeric_labels_sort_numerically(self):
        assert sort_labels({"10", "9", "100"}) == ["9", "10", "100"]
        assert sort_labels({"b", "10", "a"}) == ["10", "a", "b"]
        assert sort_labels({"", "x"}) == ["x"]

    def test_cells(self, engine):
        board = board_for(engine, "source: Projects\nx: status\ny: priority")
        cells = board.cells()
        assert [d.name for d in cells[("Doing", "1")]] == ["beta"]
        assert [d.name for d in cells[("Doing", "2")]] == ["delta"]
        assert [d.name for d in cells[("Todo", "2")]] == ["alpha"]
        assert [d.name for d in cells[("Done", "3")]] == ["gamma"]
        assert cells[("Done", "1")] == []
        assert len(cells) == 9

    def test_single_axis_cells(self, engine):
        board = board_for(engine, "source: Projects\nx: status")
        cells = board.cells()
        assert set(cells) == {("Doing", None), ("Done", None), ("Todo", None)}

    def test_explicit_domain_order_and_unassigned(self, engine):
        board = board_for(engine, "source: Projects\nx: status\nx-values: Todo, Doing")
        assert board.x_domain == ["Todo", "Doing"]
        assert [d.name for d in board.unassigned()] == ["gamma"]

    def test_missing_value_is_unassigned(self, engine):
        board = board_for(engine, "source: all\nx: status")
        assert [d.name for d in board.unassigned()] == ["loose"]

    def test_hide_unassigned(self, engine):
        board = board_for(engine, "source: all\nx: status\nhide-unassigned: true")
        assert board.unassigned() == []

    def test_multi_valued_document_in_every_cell(self, engine):
        board = board_for(engine, "source: Projects\nx: labels")
        cells = board.cells()
        assert [d.name for d in cells[("blue", None)]] == ["gamma"]
        assert [d.name for d in cells[("red", None)]] == ["gamma"]

    def test_transformed_cells_and_reverse_map(self, engine):
        board = board_for(engine, "source: Projects\ny: effort\ny-transform: lambda v: v // 10 * 10")
        assert board.y_domain == ["0", "10"]
        assert board.reverse_map("y") == {"0": [3, 2], "10": [13, 14]}
        assert sorted(d.name for d in board.cells()[(None, "10")]) == ["beta", "gamma"]

    def test_untransformed_axis_has_no_reverse_map(self, engine):
        board = board_for(engine, "source: Projects\nx: status")
        assert board.reverse_map("x") == {}

    def test_display_and_card_style(self, engine):
        board = board_for(engine, """source: Projects
x: status
display: effort, file.name
card-style: lambda p: {"color": "red" if p.get("priority") == 1 else "grey"}
""")
        beta = board.find("beta")
        assert board.display_values(beta) == {"effort": 13, "file.name": "beta"}
        assert board.card_style(beta) == {"color": "red"}
        assert board.card_style(board.find("alpha")) == {"color": "grey"}

    def test_failing_card_style_is_empty(self, engine):
        board = board_for(engine, "source: Projects\nx: status\ncard-style: lambda p: p['missing']")
        assert board.card_style(board.find("alpha")) == {}

    def test_draggable(self, engine):
        assert board_for(engine, "source: all\nx: a\ny: b\nx-readonly: true").draggable(None)
        assert not board_for(engine, "source: all\nx: a\nreadonly: true").draggable(None)

    def test_find_by_path_or_name(self, engine):
        board = board_for(engine, "source: Projects\nx: status")
        assert board.find("Projects/beta.md").name == "beta"
        assert board.find("beta").path == "Projects/beta.md"
        assert board.find("nope") is None


class TestResolveDrop:
    """Value resolution for dropped documents."""

    def test_untransformed_writes_label(self, engine):
        board = board_for(engine, "source: Projects\nx: status")
        outcome = board.resolve_drop(board.find("alpha"), x_target="Done")
        assert not outcome.cancelled
        assert outcome.updates == {"status": "Done"}

    def test_untransformed_label_matches_current_type(self, engine):
        board = board_for(engine, "source: Projects\nx: status\ny: priority")
        outcome = board.resolve_drop(board.find("alpha"), y_target="3")
        assert outcome.updates == {"priority": 3}

    def test_untransformed_list_property(self, engine):
        board = board_for(engine, "source: Projects\nx: labels")
        outcome = board.resolve_drop(board.find("gamma"), x_target="green")
        assert outcome.updates == {"labels": ["green"]}

    def test_transformed_asks_with_candidates(self, engine, make_prompt):
        prompt = make_prompt(values=[17])
        board = board_for(
            engine, "source: Projects\ny: effort\ny-transform: lambda v: v // 10 * 10",
            prompt=prompt,
        )
        outcome = board.resolve_drop(board.find("alpha"), y_target="10")
        assert outcome.updates == {"effort": 17}
        assert prompt.value_calls == [("effort", "10", [13, 14])]

    def test_axis_label_is_shown_to_prompt(self, engine, make_prompt):
        prompt = make_prompt(values=[13])
        board = board_for(
            engine,
            "source: Projects\ny: effort\ny-label: Effort\ny-transform: lambda v: v // 10 * 10",
            prompt=prompt,
        )
        board.resolve_drop(board.find("alpha"), y_target="10")
        assert prompt.value_calls[0][0] == "Effort"

    def test_value_mapping_elsewhere_is_rejected(self, engine, make_prompt):
        board = board_for(
            engine, "source: Projects\ny: effort\ny-transform: lambda v: v // 10 * 10",
            prompt=make_prompt(values=[25]),
        )
        outcome = board.resolve_drop(board.find("alpha"), y_target="10")
        assert outcome.cancelled
        assert outcome.updates == {}
        assert "'20'" in outcome.reason

    def test_no_prompt_cancels_transformed_axis(self, engine):
        board = board_for(engine, "source: Projects\ny: effort\ny-transform: lambda v: v // 10 * 10")
        outcome = board.resolve_drop(board.find("alpha"), y_target="10")
        assert outcome.cancelled

    def test_cancel_on_one_axis_writes_nothing(self, engine, make_prompt, make_store):
        store = make_store()
        board = board_for(
            engine,
            "source: Projects\nx: status\ny: effort\ny-transform: lambda v: v // 10 * 10",
            prompt=make_prompt(values=[None]),
            store=store,
        )
        outcome = board.apply_drop(board.find("alpha"), x_target="Done", y_target="10")
        assert outcome.cancelled
        assert outcome.reason.startswith("y:")
        assert outcome.updates == {}
        assert store.writes == []

    def test_both_axes_written_in_one_call(self, engine, make_prompt, make_store):
        store = make_store()
        board = board_for(
            engine,
            "source: Projects\nx: status\ny: effort\ny-transform: lambda v: v // 10 * 10",
            prompt=make_prompt(values=[19]),
            store=store,
        )
        outcome = board.apply_drop(board.find("alpha"), x_target="Done", y_target="10")
        assert outcome.written
        assert store.writes == [("Projects/alpha.md", {"status": "Done", "effort": 19})]

    def test_readonly_axis_is_skipped(self, engine, make_store):
        store = make_store()
        board = board_for(
            engine, "source: Projects\nx: status\ny: priority\nx-readonly: true", store=store
        )
        outcome = board.apply_drop(board.find("alpha"), x_target="Done", y_target="1")
        assert outcome.updates == {"priority": 1}
        assert store.writes == [("Projects/alpha.md", {"priority": 1})]

    def test_all_readonly_writes_nothing(self, engine, make_store):
        store = make_store()
        board = board_for(engine, "source: Projects\nx: status\nreadonly: true", store=store)
        outcome = board.apply_drop(board.find("alpha"), x_target="Done")
        assert not outcome.cancelled
        assert outcome.updates == {}
        assert store.writes == []

    def test_missing_target_is_skipped(self, engine):
        board = board_for(engine, "source: Projects\nx: status\ny: priority")
        outcome = board.resolve_drop(board.find("alpha"), x_target="Doing")
        assert outcome.updates == {"status": "Doing"}

    def test_second_resolution_for_same_document_is_refused(self, engine):
        inner = []

        class ReentrantPrompt:
            def choose_value(self, axis, target_label, candidates):
                inner.append(board.resolve_drop(board.find("alpha"), y_target="0"))
                return 12

            def choose_exact(self, axis, target_label, low, high):
                return None

        board = board_for(engine, "source: Projects\ny: effort\ny-transform: lambda v: v // 10 * 10")
        board.prompt = ReentrantPrompt()
        outcome = board.resolve_drop(board.find("alpha"), y_target="10")
        assert outcome.updates == {"effort": 12}
        assert inner[0].cancelled
        assert inner[0].reason == "pending"
        # released after the first resolution finishes
        board.prompt = None
        assert board.resolve_drop(board.find("alpha"), y_target="0").reason != "pending"


class TestExactMode:

    BLOCK = (
        "source: Projects\ny: effort\ny-values: [0..20, Step 10] exact\n"
        "y-transform: lambda v: v // 10 * 10"
    )
    TRANSFORM = "\ny-transform: lambda v: v // 10 * 10"

    def test_bounds(self, engine):
        board = board_for(engine, self.BLOCK)
        assert board.exact_bounds("y", "10") == (10.0, 20.0)
        assert board.exact_bounds("y", "15") is None
        assert board_for(engine, "source: Projects\ny: effort").exact_bounds("y", "10") is None

    def test_bounds_clamped_to_range_end(self, engine):
        board = board_for(engine, "source: Projects\ny: effort\ny-values: [0..100, Step 10] exact"
                          + self.TRANSFORM)
        assert board.exact_bounds("y", "100") == (100.0, 100.0)
        assert board.exact_bounds("y", "90") == (90.0, 100.0)

    def test_bounds_of_descending_range(self, engine):
        board = board_for(engine, "source: Projects\ny: effort\ny-values: [100..0, Step 25] exact"
                          + self.TRANSFORM)
        assert board.exact_bounds("y", "100") == (75.0, 100.0)
        assert board.exact_bounds("y", "0") == (0.0, 0.0)

    def test_value_in_range(self, engine, make_prompt):
        prompt = make_prompt(exact=[15])
        board = board_for(engine, self.BLOCK, prompt=prompt)
        outcome = board.resolve_drop(board.find("alpha"), y_target="10")
        assert outcome.updates == {"effort": 15}
        assert prompt.exact_calls == [("effort", "10", 10.0, 20.0)]
        assert prompt.value_calls == []

    def test_value_out_of_range_cancels(self, engine, make_prompt):
        board = board_for(engine, self.BLOCK, prompt=make_prompt(exact=[25]))
        outcome = board.resolve_drop(board.find("alpha"), y_target="10")
        assert outcome.cancelled

    def test_value_mapping_elsewhere_cancels(self, engine, make_prompt):
        board = board_for(engine, self.BLOCK, prompt=make_prompt(exact=[20]))
        outcome = board.resolve_drop(board.find("alpha"), y_target="10")
        assert outcome.cancelled

    def test_untransformed_axis_writes_label(self, vault_root, engine, make_prompt):
        prompt = make_prompt(exact=[15])
        index = ChangeIndex()
        board = board_for(
            engine, "source: Projects\ny: effort\ny-values: [0..20, Step 10] exact",
            prompt=prompt, store=FrontmatterStore(vault_root, index), index=index,
        )
        assert board.exact_bounds("y", "10") is None
        outcome = board.apply_drop(board.find("alpha"), y_target="10")
        assert outcome.updates == {"effort": 10}
        assert prompt.exact_calls == []
        assert [d.name for d in board.cells()[(None, "10")]] == ["alpha"]
        assert "alpha" not in [d.name for d in board.unassigned()]


class TestApplyDrop:
    """Writes through the property store with change acknowledgment."""

    def test_writes_file_and_refreshes(self, vault_root, engine):
        index = ChangeIndex()
        board = board_for(
            engine, "source: Projects\nx: status",
            store=FrontmatterStore(vault_root, index), index=index,
        )
        outcome = board.apply_drop(board.find("alpha"), x_target="Done")
        assert outcome.written
        assert outcome.acknowledged is True
        data, body = parse_frontmatter((vault_root / "Projects/alpha.md").read_text())
        assert data["status"] == "Done"
        assert data["effort"] == 3
        assert body == "Alpha project.\n"
        assert board.find("alpha").get("status") == "Done"
        assert "Todo" not in board.x_domain

    def test_refreshes_after_timeout(self, engine, make_store):
        board = board_for(
            engine, "source: Projects\nx: status",
            store=make_store(), index=ChangeIndex(),
            settings=EngineSettings(refresh_timeout=0.01),
        )
        outcome = board.apply_drop(board.find("alpha"), x_target="Done")
        assert outcome.written
        assert outcome.acknowledged is False

    def test_store_failure_is_reported(self, engine, make_store):
        board = board_for(engine, "source: Projects\nx: status", store=make_store(fail=True))
        outcome = board.apply_drop(board.find("alpha"), x_target="Done")
        assert not outcome.written
        assert outcome.error == "disk full"

    def test_no_store(self, engine):
        board = board_for(engine, "source: Projects\nx: status")
        with pytest.raises(RuntimeError):
            board.apply_drop(board.find("alpha"), x_target="Done")

    def test_check_choice(self, engine):
        board = board_for(engine, "source: Projects\ny: effort\ny-transform: lambda v: v // 10 * 10")
        assert board.check_choice("effort", "10", 12) is None
        assert "'20'" in board.check_choice("effort", "10", 25)
        assert board.check_choice("other", "10", 25) is None
