"""
Unit tests for the WKT codec.

Tests cover:
- Polygon encoding and ring closure
- Polygon and MultiPolygon decoding
- Malformed input handling
"""
import pytest

from parcel_editor.utils.wkt_codec import ring_to_wkt, wkt_to_ring


# ============================================================
# Encoding Tests
# ============================================================

class TestRingToWKT:
    """Tests for ring encoding."""

    def test_open_ring_is_closed(self):
        """An open ring should be closed by repeating its first vertex."""
        ring = [(50.2, 4.1), (50.2, 4.2), (50.3, 4.2), (50.3, 4.1)]

        assert ring_to_wkt(ring) == "POLYGON((4.1 50.2, 4.2 50.2, 4.2 50.3, 4.1 50.3, 4.1 50.2))"

    def test_closed_ring_not_closed_twice(self):
        """A ring already ending on its first vertex should be emitted as is."""
        ring = [(0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (0.0, 0.0)]

        assert ring_to_wkt(ring) == "POLYGON((0 0, 1 0, 1 1, 0 0))"

    def test_longitude_written_first(self):
        """WKT pairs should be (lng lat)."""
        wkt = ring_to_wkt([(-32.5, 18.25), (-32.5, 18.75), (-32.0, 18.75)])

        assert wkt.startswith("POLYGON((18.25 -32.5, ")

    def test_integral_values_have_no_decimal_point(self):
        """Whole numbers should be written without a trailing '.0'."""
        wkt = ring_to_wkt([(10.0, 20.0), (10.0, 30.0), (15.0, 30.0)])

        assert wkt == "POLYGON((20 10, 30 10, 30 15, 20 10))"

    def test_empty_ring_raises(self):
        """An empty ring cannot be encoded."""
        with pytest.raises(ValueError, match="empty ring"):
            ring_to_wkt([])


# ============================================================
# Decoding Tests
# ============================================================

class TestWKTToRing:
    """Tests for ring decoding."""

    def test_polygon_decoded_and_opened(self):
        """A closed POLYGON should decode to an open (lat, lng) ring."""
        ring = wkt_to_ring("POLYGON((4.1 50.2, 4.2 50.2, 4.2 50.3, 4.1 50.3, 4.1 50.2))")

        assert ring == [(50.2, 4.1), (50.2, 4.2), (50.3, 4.2), (50.3, 4.1)]

    def test_keyword_is_case_insensitive(self):
        """Lower-case keywords and loose spacing should be accepted."""
        ring = wkt_to_ring("polygon ( ( 0 0 , 1 0 , 1 1 , 0 0 ) )")

        assert ring == [(0.0, 0.0), (0.0, 1.0), (1.0, 1.0)]

    def test_multipolygon_reads_first_outer_ring(self):
        """Only the outer ring of the first polygon should be read."""
        wkt = (
            "MULTIPOLYGON(((0 0, 4 0, 4 4, 0 4, 0 0), (1 1, 2 1, 2 2, 1 1)),"
            " ((10 10, 12 10, 12 12, 10 10)))"
        )

        ring = wkt_to_ring(wkt)

        assert ring == [(0.0, 0.0), (0.0, 4.0), (4.0, 4.0), (4.0, 0.0)]

    def test_polygon_hole_ignored(self):
        """Interior rings of a POLYGON should be ignored."""
        ring = wkt_to_ring("POLYGON((0 0, 4 0, 4 4, 0 4, 0 0), (1 1, 2 1, 2 2, 1 1))")

        assert len(ring) == 4

    def test_consecutive_duplicates_removed(self):
        """Repeated vertices should be merged."""
        ring = wkt_to_ring("POLYGON((0 0, 1 0, 1 0, 1 1, 0 1, 0 0))")

        assert ring == [(0.0, 0.0), (0.0, 1.0), (1.0, 1.0), (1.0, 0.0)]

    def test_non_numeric_pairs_skipped(self):
        """Pairs that are not numbers should be dropped, not fail the decode."""
        ring = wkt_to_ring("POLYGON((0 0, a b, 1 0, 1 1, nan 3, 0 0))")

        assert ring == [(0.0, 0.0), (0.0, 1.0), (1.0, 1.0)]

    @pytest.mark.parametrize("text", [
        None,
        "",
        "   ",
        "POINT(1 2)",
        "LINESTRING(0 0, 1 1)",
        "POLYGON(0 0, 1 1)",
        "not wkt at all",
    ])
    def test_unreadable_input_yields_empty_ring(self, text):
        """Anything without a polygon should decode to an empty ring."""
        assert wkt_to_ring(text) == []

    def test_encoded_ring_decodes_back(self):
        """Decoding an encoded ring should give the ring back."""
        ring = [(-32.328, 18.826), (-32.328, 18.827), (-32.327, 18.827), (-32.327, 18.826)]

        assert wkt_to_ring(ring_to_wkt(ring)) == ring


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
