"""Property-based tests for trace context management."""

import uuid

from hypothesis import given, strategies as st

from portfolio_engine.utils.trace_context import clear_trace, create_trace, get_current_trace, traced


class TestTraceContextManagement:
    """Tests for trace context management."""

    @given(num_operations=st.integers(min_value=1, max_value=10))
    def test_trace_ids_are_assigned_to_operations(self, num_operations):
        """
        **Feature: observability-logging, Property: Trace IDs are assigned to operations**

        For any refresh or analysis run, the system SHALL assign a unique trace
        ID that persists until it is cleared.
        """
        clear_trace()

        trace_id = create_trace()
        assert get_current_trace() == trace_id
        uuid.UUID(trace_id)

        for _ in range(num_operations):
            assert get_current_trace() == trace_id

        clear_trace()
        assert get_current_trace() is None

    @given(count=st.integers(min_value=1, max_value=5))
    def test_trace_id_uniqueness(self, count):
        clear_trace()
        created_traces = [create_trace() for _ in range(count)]
        assert len(created_traces) == len(set(created_traces))
        clear_trace()


class TestTracedBlock:
    def test_traced_restores_previous_trace(self):
        outer = create_trace()
        with traced() as inner:
            assert get_current_trace() == inner
            assert inner != outer
        assert get_current_trace() == outer
        clear_trace()

    @given(trace_id=st.uuids().map(str))
    def test_traced_reuses_given_id(self, trace_id):
        clear_trace()
        with traced(trace_id) as current:
            assert current == trace_id
            assert get_current_trace() == trace_id
        assert get_current_trace() is None

    def test_traced_resets_on_error(self):
        clear_trace()
        try:
            with traced():
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert get_current_trace() is None
