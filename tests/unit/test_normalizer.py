"""
Unit tests for organization name normalization.
"""

import pytest

from remisslink.matching.normalizer import normalize_organization_name


class TestNormalizeOrganizationName:
    """Tests for normalize_organization_name."""

    def test_strips_file_size_annotation(self):
        """Parenthetical file sizes are removed, abbreviations are kept."""
        assert (
            normalize_organization_name("Riksdagens ombudsmän (JO) (pdf 140 kB)")
            == "Riksdagens ombudsmän (JO)"
        )

    def test_strips_word_annotation(self):
        assert normalize_organization_name("Boverket (word 2 MB)") == "Boverket"

    def test_strips_decimal_size(self):
        assert normalize_organization_name("Länsstyrelsen i Skåne (pdf 1.5 MB)") == "Länsstyrelsen i Skåne"

    def test_strips_bare_trailing_size(self):
        assert normalize_organization_name("Trafikverket 140 kB") == "Trafikverket"

    def test_strips_file_extension(self):
        assert normalize_organization_name("Blekinge Tekniska Högskola.PDF") == "Blekinge Tekniska Högskola"

    def test_extension_and_size_combined(self):
        """Extension hidden behind a size annotation is removed too."""
        assert normalize_organization_name("Sametinget.pdf (pdf 10 kB)") == "Sametinget"

    def test_collapses_whitespace(self):
        assert normalize_organization_name("  Svenska   kyrkan \n") == "Svenska kyrkan"

    def test_non_breaking_space(self):
        assert normalize_organization_name("Göteborgs\u00a0universitet") == "Göteborgs universitet"

    def test_keeps_case(self):
        """Case is preserved; comparison keys handle case."""
        assert normalize_organization_name("Myndigheten för digital förvaltning (DIGG)") == (
            "Myndigheten för digital förvaltning (DIGG)"
        )

    @pytest.mark.parametrize("raw", [None, "", "   ", "\t\n"])
    def test_empty_input(self, raw):
        """Missing or blank names normalize to the empty string."""
        assert normalize_organization_name(raw) == ""

    def test_size_only(self):
        assert normalize_organization_name("(pdf 140 kB)") == ""


class TestNormalizerIdempotence:
    """normalize(normalize(x)) == normalize(x)."""

    @pytest.mark.parametrize(
        "raw",
        [
            "Riksdagens ombudsmän (JO) (pdf 140 kB)",
            "Boverket.pdf.pdf",
            "Trafikverket (pdf 10 kB) (pdf 20 kB)",
            "Naturvårdsverket 1 MB 2 kB",
            "Region  Stockholm.docx 12 kB",
            "Malmö stad",
            "ＳＫＲ",  # Full-width letters fold under NFKC
            "",
            "  .pdf",
        ],
    )
    def test_idempotent(self, raw):
        once = normalize_organization_name(raw)
        assert normalize_organization_name(once) == once

    def test_repeated_noise_fully_removed(self):
        assert normalize_organization_name("Boverket.pdf.pdf") == "Boverket"
        assert normalize_organization_name("Trafikverket (pdf 10 kB) (pdf 20 kB)") == "Trafikverket"
