import pytest

from inkwell.processing import preprocess


class TestPreprocess:
    """Normalization of raw extracted text."""

    def test_empty_input(self):
        assert preprocess("") == ""
        assert preprocess("   \n\n\t  ") == ""

    def test_normalizes_line_endings(self):
        assert preprocess("Alpha.\r\nBeta.\rGamma.") == "Alpha.\nBeta.\nGamma."

    def test_collapses_intra_line_whitespace(self):
        text = "Hello    world\t\tagain  \n\nNext  line"
        assert preprocess(text) == "Hello world again\n\nNext line"

    def test_rejoins_lines_broken_mid_sentence(self):
        assert preprocess("the quick brown\nfox jumps") == "the quick brown fox jumps"
        assert preprocess("One,\ntwo") == "One, two"

    def test_keeps_lines_that_end_a_sentence(self):
        assert preprocess("End.\nnext line") == "End.\nnext line"
        assert preprocess("a heading\nCapitalized start") == "a heading\nCapitalized start"

    def test_collapses_excess_blank_lines(self):
        assert preprocess("A\n\n\n\n\nB") == "A\n\nB"

    def test_keeps_paragraph_breaks(self):
        assert preprocess("First paragraph.\n\nSecond paragraph.") == "First paragraph.\n\nSecond paragraph."

    def test_strips_pagination_lines(self):
        text = "Intro text.\n12\nMore text.\nPage 3 of 10\nEnd.\n- 4 -\nPAGE 5\nFinal."
        assert preprocess(text) == "Intro text.\nMore text.\nEnd.\nFinal."

    def test_page_number_removal_rejoins_split_sentence(self):
        assert preprocess("the report\n7\ncontinues here") == "the report continues here"

    def test_numbers_inside_lines_are_kept(self):
        assert preprocess("12 apples were sold.") == "12 apples were sold."

    def test_trims_document_edges(self):
        assert preprocess("  \n\n  Hello  \n\n ") == "Hello"

    @pytest.mark.parametrize(
        "text",
        [
            "",
            "plain",
            "Alpha.\r\n\r\n\r\n\r\nBeta   gamma\t\n",
            "the quick\nbrown,\nfox\n\n\n\n12\n\nPage 2\nthe end",
            "  # Title\n\n- item one\n- item two\n\n---\n\nclosing words,\nand more  ",
            "x\n1\ny\n2\nz",
        ],
    )
    def test_idempotent(self, text):
        once = preprocess(text)
        assert preprocess(once) == once
