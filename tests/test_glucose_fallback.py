"""Tests for free-text glucose extraction and band classification."""
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from glucosnap.glucose_fallback import (
    BAND_TEXTS,
    GlucoseBand,
    classify_band,
    extract_reading,
)


class TestClassifyBand:
    """Test classify_band thresholds."""

    def test_mmol_low(self):
        assert classify_band(3.9, "mmol/l") == GlucoseBand.LOW

    def test_mmol_lower_edge_is_normal(self):
        assert classify_band(4.0, "mmol/l") == GlucoseBand.NORMAL

    def test_mmol_normal_upper_bound_inclusive(self):
        assert classify_band(7.0, "mmol/l") == GlucoseBand.NORMAL

    def test_mmol_high(self):
        assert classify_band(7.1, "mmol/l") == GlucoseBand.HIGH
        assert classify_band(11.0, "mmol/l") == GlucoseBand.HIGH

    def test_mmol_very_high(self):
        assert classify_band(11.1, "mmol/l") == GlucoseBand.VERY_HIGH

    def test_mgdl_bands(self):
        assert classify_band(69, "mg/dl") == GlucoseBand.LOW
        assert classify_band(70, "mg/dl") == GlucoseBand.NORMAL
        assert classify_band(126, "mg/dl") == GlucoseBand.NORMAL
        assert classify_band(127, "mg/dl") == GlucoseBand.HIGH
        assert classify_band(200, "mg/dl") == GlucoseBand.HIGH
        assert classify_band(201, "mg/dl") == GlucoseBand.VERY_HIGH

    def test_unit_case_insensitive(self):
        assert classify_band(5.5, "mmol/L") == GlucoseBand.NORMAL


class TestExtractReading:
    """Test extract_reading."""

    def test_reading_from_sentence(self):
        reading = extract_reading("The meter shows 10.2 mmol/L after lunch.", "zh")
        assert reading is not None
        assert reading.value_text == "10.2"
        assert reading.unit == "mmol/l"
        assert reading.interpretation == BAND_TEXTS["zh"][GlucoseBand.HIGH][0]
        assert reading.recommendation == BAND_TEXTS["zh"][GlucoseBand.HIGH][1]

    def test_english_table(self):
        reading = extract_reading("Reading: 6.2 mmol/L", "en")
        assert reading.interpretation == "Normal blood glucose"
        assert reading.interpretation != BAND_TEXTS["zh"][GlucoseBand.NORMAL][0]

    def test_chinese_text_around_value(self):
        reading = extract_reading("血糖仪显示读数为5.6mmol/L，属于正常范围", "zh")
        assert reading.value_text == "5.6"
        assert reading.interpretation == "血糖正常"

    def test_mgdl_integer_value(self):
        reading = extract_reading("Glucose 250 MG/DL", "en")
        assert reading.value_text == "250"
        assert reading.unit == "mg/dl"
        assert reading.interpretation == "Very high blood glucose"

    def test_low_reading(self):
        reading = extract_reading("3.9 mmol/L", "en")
        assert reading.interpretation == "Low blood glucose"

    def test_no_unit_returns_none(self):
        assert extract_reading("The screen shows 7.5 but the unit is unreadable", "zh") is None

    def test_unsupported_unit_returns_none(self):
        assert extract_reading("HbA1c 6.5 %", "en") is None

    def test_empty_text(self):
        assert extract_reading("", "zh") is None
        assert extract_reading(None, "zh") is None

    def test_unknown_language_uses_chinese_table(self):
        reading = extract_reading("5.0 mmol/L", "fr")
        assert reading.interpretation == "血糖正常"

    def test_every_language_covers_every_band(self):
        for table in BAND_TEXTS.values():
            assert set(table) == set(GlucoseBand)
