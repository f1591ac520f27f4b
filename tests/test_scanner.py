"""Tests for the marker-aware dump row counter."""

from pathlib import Path

from storefront_backup.dump.scanner import DumpScanner, TableScan, copy_start_pattern


def _write_dump(tmp_path: Path, text: str, name: str = "dump.sql") -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


USERS_BLOCK = (
    "COPY public.users (id, email, role) FROM stdin;\n"
    "1\tadmin@example.com\tadmin\n"
    "2\tjane@example.com\tcustomer\n"
    "\\.\n"
)


# ------------------------------------------------------------------
# Block counting
# ------------------------------------------------------------------


class TestBlockCounting:
    """Count data lines of bulk-load blocks."""

    def test_counts_block_rows(self, tmp_path):
        path = _write_dump(tmp_path, "SET x = 1;\n" + USERS_BLOCK)
        assert DumpScanner(path).count("users") == 2

    def test_absent_table_is_unknown(self, tmp_path):
        path = _write_dump(tmp_path, USERS_BLOCK)
        assert DumpScanner(path).count("orders") is None

    def test_empty_block_is_zero(self, tmp_path):
        path = _write_dump(tmp_path, "COPY public.orders (id) FROM stdin;\n\\.\n")
        assert DumpScanner(path).count("orders") == 0

    def test_blank_lines_inside_block_ignored(self, tmp_path):
        path = _write_dump(
            tmp_path, "COPY public.orders (id) FROM stdin;\n1\n\n2\n\\.\n"
        )
        assert DumpScanner(path).count("orders") == 2

    def test_unqualified_block(self, tmp_path):
        path = _write_dump(tmp_path, "COPY orders (id) FROM stdin;\n1\n\\.\n")
        assert DumpScanner(path).count("orders") == 1

    def test_similar_table_name_not_counted(self, tmp_path):
        """A block for users_archive must not count toward users."""
        path = _write_dump(
            tmp_path,
            "COPY public.users_archive (id) FROM stdin;\n1\n2\n3\n\\.\n" + USERS_BLOCK,
        )
        assert DumpScanner(path).count("users") == 2

    def test_marker_like_line_inside_block_is_data(self, tmp_path):
        path = _write_dump(
            tmp_path,
            "COPY public.orders (id, note) FROM stdin;\n1\t-- APP_ORDERS_TOTAL:99\n\\.\n",
        )
        scans = DumpScanner(path).scan(["orders"])
        assert scans["orders"].marker is None
        assert scans["orders"].block_rows == 1

    def test_unterminated_block_counts_to_end(self, tmp_path):
        path = _write_dump(
            tmp_path, "COPY public.orders (id) FROM stdin;\n1\n2\n3\n"
        )
        scan = DumpScanner(path).scan(["orders"])["orders"]
        assert scan.block_rows == 3
        assert scan.block_terminated is False

    def test_crlf_line_endings(self, tmp_path):
        path = tmp_path / "dump.sql"
        path.write_bytes(b"COPY public.orders (id) FROM stdin;\r\n1\r\n2\r\n\\.\r\n")
        scan = DumpScanner(path).scan(["orders"])["orders"]
        assert scan.block_rows == 2
        assert scan.block_terminated is True


# ------------------------------------------------------------------
# Markers
# ------------------------------------------------------------------


class TestMarkers:
    """Marker comments take precedence over the raw block count."""

    def test_marker_before_block_overrides(self, tmp_path):
        path = _write_dump(tmp_path, "-- APP_USERS_TOTAL:5\n" + USERS_BLOCK)
        assert DumpScanner(path).count("users") == 5

    def test_marker_after_block_overrides(self, tmp_path):
        path = _write_dump(tmp_path, USERS_BLOCK + "\n\n-- APP_USERS_TOTAL:5\n")
        assert DumpScanner(path).count("users") == 5

    def test_marker_without_block(self, tmp_path):
        path = _write_dump(tmp_path, "-- APP_ORDER_ITEMS_TOTAL:4\n")
        assert DumpScanner(path).count("order_items") == 4

    def test_zero_marker(self, tmp_path):
        path = _write_dump(tmp_path, USERS_BLOCK + "-- APP_USERS_TOTAL:0\n")
        assert DumpScanner(path).count("users") == 0

    def test_first_marker_wins(self, tmp_path):
        path = _write_dump(
            tmp_path, "-- APP_USERS_TOTAL:7\n-- APP_USERS_TOTAL:9\n"
        )
        assert DumpScanner(path).count("users") == 7

    def test_malformed_marker_ignored(self, tmp_path):
        path = _write_dump(tmp_path, "-- APP_USERS_TOTAL:many\n" + USERS_BLOCK)
        assert DumpScanner(path).count("users") == 2


# ------------------------------------------------------------------
# Multi-table scans
# ------------------------------------------------------------------


class TestCountMany:
    """Scan several tables in one pass."""

    def test_count_many(self, tmp_path):
        path = _write_dump(
            tmp_path,
            USERS_BLOCK
            + "COPY public.orders (id) FROM stdin;\n1\n\\.\n"
            + "-- APP_ORDERS_TOTAL:3\n",
        )
        counts = DumpScanner(path).count_many(["users", "orders", "order_items"])
        assert counts == {"users": 2, "orders": 3, "order_items": None}

    def test_scan_reports_findings(self, tmp_path):
        path = _write_dump(tmp_path, USERS_BLOCK)
        scan = DumpScanner(path).scan(["users"])["users"]
        assert scan.block_found is True
        assert scan.block_terminated is True
        assert scan.block_rows == 2
        assert scan.marker is None

    def test_path_property(self, tmp_path):
        path = _write_dump(tmp_path, "")
        assert DumpScanner(str(path)).path == path


class TestTableScan:
    """Test TableScan.count precedence."""

    def test_unknown(self):
        assert TableScan().count is None

    def test_block_only(self):
        assert TableScan(block_found=True, block_rows=3).count == 3

    def test_marker_wins(self):
        assert TableScan(block_found=True, block_rows=3, marker=8).count == 8


class TestCopyStartPattern:
    """Test the block header regex."""

    def test_groups(self):
        match = copy_start_pattern().match('COPY public.users (id, "full name") FROM stdin;')
        assert match is not None
        assert match.group("schema") == "public"
        assert match.group("table") == "users"
        assert match.group("columns") == 'id, "full name"'

    def test_rejects_copy_to(self):
        assert copy_start_pattern().match("COPY public.users TO stdout;") is None


# ------------------------------------------------------------------
# Multi-line literals
# ------------------------------------------------------------------


class TestMultiLineLiterals:
    """Lines continuing an open string literal are text."""

    def test_marker_inside_literal_ignored(self, tmp_path):
        path = _write_dump(
            tmp_path,
            "-- APP_USERS_TOTAL:1\n"
            "INSERT INTO public.users (\"id\", \"full_name\") VALUES (1, 'Eve\n"
            "-- APP_ORDERS_TOTAL:0\n"
            "') ON CONFLICT (\"id\") DO UPDATE SET \"full_name\" = EXCLUDED.\"full_name\";\n"
            "-- APP_ORDERS_TOTAL:2\n",
        )
        assert DumpScanner(path).count_many(["users", "orders"]) == {"users": 1, "orders": 2}

    def test_block_header_inside_literal_ignored(self, tmp_path):
        path = _write_dump(
            tmp_path,
            "COMMENT ON TABLE public.orders IS 'example:\n"
            "COPY public.orders (id) FROM stdin;\n"
            "';\n",
        )
        assert DumpScanner(path).count("orders") is None

    def test_apostrophe_in_other_block_data(self, tmp_path):
        """Data rows of an unrequested block never open a quote."""
        path = _write_dump(
            tmp_path,
            "COPY public.reviews (id, body) FROM stdin;\n1\tit's fine\n\\.\n"
            "-- APP_ORDERS_TOTAL:4\n",
        )
        assert DumpScanner(path).count("orders") == 4
