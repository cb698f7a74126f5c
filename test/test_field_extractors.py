import unittest
from decimal import Decimal

from data_models import Found, NotFound
from processing.field_extractors import (extract_amount, extract_amount_in_words,
                                         extract_bank_branch_code_center, extract_cheque_date,
                                         extract_payee_name, extract_payer_name, parse_amount,
                                         repair_month)

CHEQUE_TEXT = """MAYBANK BERHAD
KUALA LUMPUR MAIN BRANCH 27-14401
Tarikh / Date: 15/06/2024
BAYAR / PAY John Doe
ATAU PEMBAWA / OR BEARER
RINGGIT MALAYSIA ONE THOUSAND TWO HUNDRED FIFTY ONLY
RM 1,250.00
ACME TRADING SDN BHD
TANDATANGAN / SIGNATURE
⑆123456⑆ 1440512⑈ 5140123456⑆ 10"""


def run(extractor, text):
    return extractor(text, text.split('\n'))


class ChequeTextTestCase(unittest.TestCase):
    """Every extractor against one complete cheque."""

    def test_payee_name(self):
        self.assertEqual(run(extract_payee_name, CHEQUE_TEXT), Found(value="John Doe"))

    def test_payer_name(self):
        self.assertEqual(run(extract_payer_name, CHEQUE_TEXT), Found(value="ACME TRADING SDN BHD"))

    def test_amount(self):
        outcome = run(extract_amount, CHEQUE_TEXT)
        self.assertIsInstance(outcome, Found)
        self.assertEqual(outcome.value, Decimal("1250.00"))

    def test_amount_in_words(self):
        outcome = run(extract_amount_in_words, CHEQUE_TEXT)
        self.assertEqual(outcome.value, "ONE THOUSAND TWO HUNDRED FIFTY")

    def test_cheque_date(self):
        self.assertEqual(run(extract_cheque_date, CHEQUE_TEXT), Found(value="15-06-2024"))

    def test_bank_branch_code_center(self):
        self.assertEqual(run(extract_bank_branch_code_center, CHEQUE_TEXT), Found(value="27-14401"))


class PayeeTestCase(unittest.TestCase):

    def test_strips_bearer_suffix(self):
        outcome = run(extract_payee_name, "PAY: Jane Roe OR BEARER")
        self.assertEqual(outcome.value, "Jane Roe")

    def test_name_on_following_line(self):
        outcome = run(extract_payee_name, "BAYAR / PAY\n  Tan Ah Kow  \nRM 10.00")
        self.assertEqual(outcome.value, "Tan Ah Kow")

    def test_no_label(self):
        outcome = run(extract_payee_name, "John Doe\nRM 10.00")
        self.assertIsInstance(outcome, NotFound)
        self.assertIn("'PAY'", outcome.reason)

    def test_label_inside_word_is_ignored(self):
        self.assertIsInstance(run(extract_payee_name, "PAYMENT ADVICE"), NotFound)


class PayerTestCase(unittest.TestCase):

    def test_strips_non_letters(self):
        outcome = run(extract_payer_name, "A.B. Tan & Co. 123\nAuthorised Signature")
        self.assertEqual(outcome.value, "AB Tan Co")

    def test_candidate_too_short(self):
        outcome = run(extract_payer_name, "JD\nSIGNATURE")
        self.assertIsInstance(outcome, NotFound)
        self.assertIn("too short", outcome.reason)

    def test_no_line_above(self):
        self.assertIsInstance(run(extract_payer_name, "SIGNATURE\nACME"), NotFound)


class AmountTestCase(unittest.TestCase):

    def test_invalid_figure_keeps_raw_text_in_reason(self):
        outcome = run(extract_amount, "RM abc.de")
        self.assertIsInstance(outcome, NotFound)
        self.assertIn("'abc.de'", outcome.reason)

    def test_no_space_after_label(self):
        self.assertEqual(run(extract_amount, "RM1,250.00").value, Decimal("1250.00"))

    def test_whole_amount_with_fill_characters(self):
        self.assertEqual(run(extract_amount, "RM ***500***").value, Decimal("500.00"))

    def test_zero_is_not_an_amount(self):
        self.assertIsInstance(run(extract_amount, "RM 0.00"), NotFound)

    def test_figure_on_next_line(self):
        self.assertEqual(run(extract_amount, "RM\n75.50").value, Decimal("75.50"))

    def test_ignores_numbers_without_label(self):
        outcome = run(extract_amount, "ACCOUNT 1234567890\n1,250.00")
        self.assertIsInstance(outcome, NotFound)

    def test_parse_amount(self):
        self.assertEqual(parse_amount("1,000,000.5"), Decimal("1000000.50"))
        self.assertIsNone(parse_amount("-5.00x"))
        self.assertIsNone(parse_amount("NaN"))
        self.assertIsNone(parse_amount("1E50"))
        self.assertIsNone(parse_amount("12345678901234567890123456789"))
        self.assertIsNone(parse_amount("1000000000000.00"))
        self.assertEqual(parse_amount("999999999999.99"), Decimal("999999999999.99"))

    def test_oversized_figure_is_not_an_amount(self):
        for figure in ("12345678901234567890123456789", "1E50"):
            outcome = run(extract_amount, "RM " + figure)
            self.assertIsInstance(outcome, NotFound, figure)
            self.assertIn(figure, outcome.reason)


class AmountInWordsTestCase(unittest.TestCase):

    def test_malay_terminator(self):
        outcome = run(extract_amount_in_words, "RINGGIT MALAYSIA: SERIBU LIMA RATUS SAHAJA")
        self.assertEqual(outcome.value, "SERIBU LIMA RATUS")

    def test_words_span_lines(self):
        outcome = run(extract_amount_in_words, "RINGGIT MALAYSIA TWO THOUSAND\nFIVE HUNDRED ONLY")
        self.assertEqual(outcome.value, "TWO THOUSAND FIVE HUNDRED")

    def test_hyphenated_words(self):
        outcome = run(extract_amount_in_words, "Ringgit Malaysia twenty-five only")
        self.assertEqual(outcome.value, "TWENTY FIVE")

    def test_no_terminator(self):
        outcome = run(extract_amount_in_words, "RINGGIT MALAYSIA ONE HUNDRED")
        self.assertIsInstance(outcome, NotFound)

    def test_no_number_words(self):
        outcome = run(extract_amount_in_words, "RINGGIT MALAYSIA ACME TRADING ONLY")
        self.assertIsInstance(outcome, NotFound)
        self.assertIn("no number words", outcome.reason)


class ChequeDateTestCase(unittest.TestCase):

    def assertDate(self, text, expected):
        outcome = run(extract_cheque_date, text)
        self.assertIsInstance(outcome, Found, text)
        self.assertEqual(outcome.value, expected, text)

    def test_formats(self):
        self.assertDate("Date: 15/06/2024", "15-06-2024")
        self.assertDate("Date: 15.06.24", "15-06-2024")
        self.assertDate("DATE 5-6-2024", "05-06-2024")
        self.assertDate("Date 15 06 2024", "15-06-2024")
        self.assertDate("Date 15062024", "15-06-2024")
        self.assertDate("Date 150624", "15-06-2024")
        self.assertDate("Date 1 5 0 6 2 0 2 4", "15-06-2024")
        self.assertDate("Date 1 5 0 6 2 4", "15-06-2024")

    def test_date_on_following_line(self):
        self.assertDate("TARIKH\n15/06/2024", "15-06-2024")

    def test_outside_window(self):
        outcome = run(extract_cheque_date, "DATE\nfoo\nbar\n15/06/2024")
        self.assertIsInstance(outcome, NotFound)

    def test_first_pattern_wins(self):
        self.assertDate("Date: 15/06/2024 120724", "15-06-2024")

    def test_no_second_attempt_after_invalid_date(self):
        outcome = run(extract_cheque_date, "Date: 31/02/2024 150624")
        self.assertIsInstance(outcome, NotFound)
        self.assertIn("not a valid calendar date", outcome.reason)

    def test_unlabelled_date_ignored(self):
        outcome = run(extract_cheque_date, "15/06/2024")
        self.assertIsInstance(outcome, NotFound)
        self.assertIn("no 'DATE'/'TARIKH' label", outcome.reason)

    def test_month_repair(self):
        outcome = run(extract_cheque_date, "Date: 15/86/2024")
        self.assertEqual(outcome.value, "15-06-2024")
        self.assertEqual(outcome.confidence, 75.0)
        self.assertIn("'86'", outcome.rationale)

    def test_unrepairable_month(self):
        outcome = run(extract_cheque_date, "Date: 15/13/2024")
        self.assertIsInstance(outcome, Found)
        self.assertEqual(outcome.value, "15-13-2024")
        self.assertEqual(outcome.confidence, 40.0)

    def test_repair_month(self):
        self.assertEqual(repair_month('86'), '6')
        self.assertEqual(repair_month('91'), '1')
        self.assertIsNone(repair_month('80'))
        self.assertIsNone(repair_month('13'))


class BankBranchCodeCenterTestCase(unittest.TestCase):

    def test_label(self):
        self.assertEqual(run(extract_bank_branch_code_center, "KOD CAWANGAN 14-40512").value, "14-40512")

    def test_falls_back_to_micr_line(self):
        text = "PAY Jane\n⑆123456⑆ 14-40512⑈ 5140123456⑆ 10"
        self.assertEqual(run(extract_bank_branch_code_center, text).value, "14-40512")

    def test_not_found(self):
        self.assertIsInstance(run(extract_bank_branch_code_center, "PAY Jane\nRM 10.00"), NotFound)


if __name__ == '__main__':
    unittest.main()
