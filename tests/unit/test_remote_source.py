# =============================================================================
# tests/unit/test_remote_source.py
# Unit Tests for the Supabase Remote Source
# =============================================================================

from unittest.mock import MagicMock

import pytest

from order_core.config import Settings
from order_core.data.remote_source import (
    SupabaseRemoteSource,
    UnavailableRemoteSource,
    get_supabase_client,
)
from order_core.errors import RemoteQueryError


def _response(rows):
    response = MagicMock()
    response.data = rows
    return response


class TestQueryAll:
    """Paginated full-table fetch"""

    def test_empty_table(self, mock_supabase):
        query = mock_supabase.table.return_value.select.return_value
        query.range.return_value.execute.return_value = _response([])

        assert SupabaseRemoteSource(mock_supabase).query_all("teams") == []
        mock_supabase.table.assert_called_with("teams")

    def test_pages_until_short_page(self, mock_supabase):
        first = [{"id": i} for i in range(1000)]
        second = [{"id": 1000 + i} for i in range(5)]
        query = mock_supabase.table.return_value.select.return_value
        query.range.return_value.execute.side_effect = [_response(first), _response(second)]

        rows = SupabaseRemoteSource(mock_supabase).query_all("products")

        assert len(rows) == 1005
        assert [c.args for c in query.range.call_args_list] == [(0, 999), (1000, 1999)]

    def test_order_by(self, mock_supabase):
        ordered = mock_supabase.table.return_value.select.return_value.order.return_value
        ordered.range.return_value.execute.return_value = _response([{"code": 1}])

        rows = SupabaseRemoteSource(mock_supabase).query_all("teams", order_by="code")

        assert rows == [{"code": 1}]
        mock_supabase.table.return_value.select.return_value.order.assert_called_once_with("code")

    def test_transport_error_is_wrapped(self, mock_supabase):
        mock_supabase.table.side_effect = ConnectionError("timeout")

        with pytest.raises(RemoteQueryError) as exc_info:
            SupabaseRemoteSource(mock_supabase).query_all("teams")
        assert exc_info.value.details["collection"] == "teams"


class TestFilteredQueries:
    """query_where / query_single"""

    def test_query_where_chains_filters(self, mock_supabase):
        select = mock_supabase.table.return_value.select.return_value
        select.eq.return_value.eq.return_value.execute.return_value = _response([{"user_id": "555"}])

        rows = SupabaseRemoteSource(mock_supabase).query_where(
            "users", {"user_id": "555", "team_id": 10}
        )

        assert rows == [{"user_id": "555"}]
        select.eq.assert_called_once_with("user_id", "555")
        select.eq.return_value.eq.assert_called_once_with("team_id", 10)

    def test_query_single_first_row_or_none(self, mock_supabase):
        limited = mock_supabase.table.return_value.select.return_value.eq.return_value.limit.return_value
        limited.execute.side_effect = [_response([{"code": 10}]), _response([])]
        source = SupabaseRemoteSource(mock_supabase)

        assert source.query_single("teams", {"code": "10"}) == {"code": 10}
        assert source.query_single("teams", {"code": "99"}) is None

    def test_query_where_error_is_wrapped(self, mock_supabase):
        select = mock_supabase.table.return_value.select.return_value
        select.eq.return_value.execute.side_effect = RuntimeError("500")

        with pytest.raises(RemoteQueryError):
            SupabaseRemoteSource(mock_supabase).query_where("users", {"user_id": "555"})


class TestUnconfigured:
    """No credentials"""

    def test_no_client_without_credentials(self):
        assert get_supabase_client(Settings()) is None

    @pytest.mark.parametrize("call", [
        lambda s: s.query_all("teams"),
        lambda s: s.query_where("users", {"user_id": "1"}),
        lambda s: s.query_single("teams", {"code": "10"}),
    ])
    def test_unavailable_source_always_raises(self, call):
        with pytest.raises(RemoteQueryError):
            call(UnavailableRemoteSource())
