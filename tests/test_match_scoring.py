import unittest
from unittest import mock

from tender_intel.models.schemas import (
    CompanyData, ContractRecord, FinancialIndicators, TenderListing, MatchAnalysis, ScoredTender
)
from tender_intel.services.company_data import get_experience_by_unspsc
from tender_intel.services.match_scoring import (
    CompanyMatchContext, BandedScoringStrategy, GoNoGoScoringStrategy,
    score_breakdown, calculate_match_score, analyze_tender_match, get_strategy,
    score_tenders, classify_score, rank_opportunities, detect_risks, summarize_scores
)

MILLION = 1_000_000


def make_company(working_capital=100 * MILLION, codes=("72141000",)):
    indicators = None
    if working_capital is not None:
        indicators = FinancialIndicators(working_capital=working_capital)
    return CompanyData(
        id=1,
        company_name="Vías y Obras SAS",
        unspsc_codes=list(codes),
        financial_indicators=indicators
    )


def make_tender(secop_id="CO1.REQ.1", amount=90 * MILLION, code="V1.72141000", department="Antioquia"):
    return TenderListing(
        id_del_proceso=secop_id,
        referencia_del_proceso=f"REF-{secop_id}",
        entidad="ALCALDIA DE MEDELLIN",
        departamento_entidad=department,
        codigo_principal_de_categoria=code,
        precio_base=str(amount) if amount is not None else None
    )


def make_contracts(value=95 * MILLION, code="72141001"):
    return [ContractRecord(client_name="INVIAS", contract_value=value, unspsc_codes=[code])]


def scored(secop_id, score, amount=0.0):
    return ScoredTender(
        tender=make_tender(secop_id=secop_id, amount=amount),
        analysis=MatchAnalysis(is_match=score >= 70, match_score=score),
        strategy="banded"
    )


class TestBandedScore(unittest.TestCase):

    def test_full_fit_scores_100(self):
        experience = get_experience_by_unspsc(make_contracts())
        breakdown = score_breakdown(make_company(), make_tender(), experience)

        self.assertEqual(breakdown.financial, 40)
        self.assertEqual(breakdown.experience, 40)
        self.assertEqual(breakdown.size, 20)
        self.assertEqual(breakdown.total, 100)
        self.assertIn("Capacidad financiera suficiente (111%)", breakdown.reasons)

    def test_no_capacity_caps_score(self):
        experience = get_experience_by_unspsc(make_contracts())
        breakdown = score_breakdown(make_company(working_capital=None), make_tender(), experience)

        self.assertEqual(breakdown.financial, 0)
        self.assertLessEqual(breakdown.total, 60)
        self.assertIn("Configura tus indicadores financieros para validar capacidad", breakdown.warnings)

    def test_financial_bands(self):
        company = make_company()
        experience = get_experience_by_unspsc(make_contracts())
        cases = [
            (100 * MILLION, 40),
            (130 * MILLION, 25),
            (180 * MILLION, 10),
            (250 * MILLION, 0),
            (0, 0),
        ]
        for amount, expected in cases:
            with self.subTest(amount=amount):
                breakdown = score_breakdown(company, make_tender(amount=amount), experience)
                self.assertEqual(breakdown.financial, expected)

    def test_financial_band_edges(self):
        # Capacity is 100M; ratios exactly on a band edge take the better band
        company = make_company()
        experience = get_experience_by_unspsc(make_contracts())
        cases = [
            (100 * MILLION, 40),
            (100 * MILLION + 1, 25),
            (150 * MILLION, 25),
            (150 * MILLION + 1, 10),
            (200 * MILLION, 10),
            (200 * MILLION + 1, 0),
        ]
        for amount, expected in cases:
            with self.subTest(amount=amount):
                breakdown = score_breakdown(company, make_tender(amount=amount), experience)
                self.assertEqual(breakdown.financial, expected)

    def test_experience_without_required_codes_is_flat(self):
        breakdown = score_breakdown(make_company(), make_tender(code=None), {})
        self.assertEqual(breakdown.experience, 20)

    def test_experience_with_truncated_code_is_flat(self):
        experience = get_experience_by_unspsc(make_contracts())
        breakdown = score_breakdown(make_company(), make_tender(code="V1.80"), experience)

        self.assertEqual(breakdown.experience, 20)
        self.assertIn("El proceso no declara códigos UNSPSC", breakdown.warnings)

    def test_experience_without_match(self):
        experience = get_experience_by_unspsc(make_contracts(code="43211500"))
        breakdown = score_breakdown(make_company(), make_tender(), experience)
        self.assertEqual(breakdown.experience, 0)
        self.assertIn("No hay coincidencia en códigos UNSPSC", breakdown.warnings)

    def test_size_bands(self):
        experience = get_experience_by_unspsc(make_contracts(value=95 * MILLION))
        cases = [
            (90 * MILLION, 20),
            (30 * MILLION, 10),
            (10 * MILLION, 0),
        ]
        for amount, expected in cases:
            with self.subTest(amount=amount):
                breakdown = score_breakdown(make_company(), make_tender(amount=amount), experience)
                self.assertEqual(breakdown.size, expected)

    def test_size_band_edges(self):
        # Average contract is 100M
        experience = get_experience_by_unspsc(make_contracts(value=100 * MILLION))
        cases = [
            (50 * MILLION, 20),
            (50 * MILLION - 1, 10),
            (200 * MILLION, 20),
            (200 * MILLION + 1, 10),
            (30 * MILLION, 10),
            (30 * MILLION - 1, 0),
            (300 * MILLION, 10),
            (300 * MILLION + 1, 0),
        ]
        for amount, expected in cases:
            with self.subTest(amount=amount):
                breakdown = score_breakdown(make_company(), make_tender(amount=amount), experience)
                self.assertEqual(breakdown.size, expected)

    def test_size_without_history(self):
        breakdown = score_breakdown(make_company(), make_tender(), {})
        self.assertEqual(breakdown.size, 0)

    def test_score_is_deterministic_and_bounded(self):
        experience = get_experience_by_unspsc(make_contracts())
        scores = {calculate_match_score(make_company(), make_tender(), experience) for _ in range(5)}
        self.assertEqual(scores, {100})

        unparsable = make_tender(amount=None)
        score = calculate_match_score(make_company(), unparsable, experience)
        self.assertGreaterEqual(score, 0)
        self.assertLessEqual(score, 100)


class TestGoNoGo(unittest.TestCase):

    def test_full_match(self):
        analysis = analyze_tender_match(make_tender(), make_company(), make_contracts())

        self.assertTrue(analysis.is_match)
        self.assertEqual(analysis.match_score, 100)
        self.assertIn("Experiencia previa: 1 contratos similares", analysis.reasons)
        self.assertIn("Ubicación favorable: Antioquia", analysis.reasons)

    def test_threshold_is_inclusive_at_50(self):
        # UNSPSC (40) + location (10), no indicators and no contracts
        analysis = analyze_tender_match(make_tender(), make_company(working_capital=None), [])

        self.assertEqual(analysis.match_score, 50)
        self.assertTrue(analysis.is_match)

    def test_below_threshold(self):
        analysis = analyze_tender_match(
            make_tender(department=None), make_company(working_capital=None), []
        )
        self.assertEqual(analysis.match_score, 40)
        self.assertFalse(analysis.is_match)

    def test_insufficient_capacity_warns(self):
        analysis = analyze_tender_match(make_tender(amount=150 * MILLION), make_company(), [])
        self.assertIn("Requiere $150.000.000 pero tienes $100.000.000", analysis.warnings)


class TestStrategies(unittest.TestCase):

    def test_get_strategy(self):
        self.assertIsInstance(get_strategy("banded"), BandedScoringStrategy)
        self.assertIsInstance(get_strategy("go_no_go"), GoNoGoScoringStrategy)
        with self.assertRaises(ValueError):
            get_strategy("weighted")

    def test_strategies_score_the_same_tender_differently(self):
        context = CompanyMatchContext(make_company(working_capital=None), [])
        tender = make_tender()

        banded = BandedScoringStrategy().analyze(tender, context)
        go_no_go = GoNoGoScoringStrategy().analyze(tender, context)

        self.assertFalse(banded.is_match)
        self.assertTrue(go_no_go.is_match)

    def test_parallel_scoring_keeps_order(self):
        context = CompanyMatchContext(make_company(), make_contracts())
        tenders = [make_tender(secop_id=f"CO1.REQ.{i}", amount=(i + 1) * 20 * MILLION) for i in range(12)]

        sequential = score_tenders(context, tenders, parallel_threshold=1000)
        parallel = score_tenders(context, tenders, max_workers=4, parallel_threshold=5)

        self.assertEqual(
            [item.tender.id_del_proceso for item in parallel],
            [tender.id_del_proceso for tender in tenders]
        )
        self.assertEqual(
            [item.analysis.match_score for item in parallel],
            [item.analysis.match_score for item in sequential]
        )

    def test_scoring_run_reuses_company_context(self):
        company = make_company()
        contracts = make_contracts()
        tenders = [make_tender(secop_id=f"CO1.REQ.{i}", amount=(i + 1) * 40 * MILLION) for i in range(4)]
        experience = get_experience_by_unspsc(contracts)
        expected = [score_breakdown(company, tender, experience).total for tender in tenders]
        context = CompanyMatchContext(company, contracts)

        with mock.patch("tender_intel.services.match_scoring.calculate_capacity") as capacity, \
                mock.patch("tender_intel.services.match_scoring.average_contract_value") as average, \
                mock.patch("tender_intel.services.match_scoring.get_experience_by_unspsc") as grouping:
            banded = score_tenders(context, tenders)
            go_no_go = score_tenders(context, tenders, strategy=GoNoGoScoringStrategy())

        capacity.assert_not_called()
        average.assert_not_called()
        grouping.assert_not_called()
        self.assertEqual([item.analysis.match_score for item in banded], expected)
        self.assertEqual(
            [item.analysis.match_score for item in go_no_go],
            [analyze_tender_match(tender, company, contracts).match_score for tender in tenders]
        )


class TestClassification(unittest.TestCase):

    def test_bands(self):
        self.assertEqual(classify_score(100), "opportunity")
        self.assertEqual(classify_score(70), "opportunity")
        self.assertEqual(classify_score(69), "neutral")
        self.assertEqual(classify_score(50), "neutral")
        self.assertEqual(classify_score(49), "risk")
        self.assertEqual(classify_score(30), "risk")
        self.assertEqual(classify_score(29), "neutral")

    def test_opportunities_sorted_with_stable_ties(self):
        items = [scored("a", 80), scored("b", 90), scored("c", 80), scored("d", 60)]
        ranked = rank_opportunities(items)

        self.assertEqual([opportunity.secop_id for opportunity in ranked], ["b", "a", "c"])
        self.assertEqual(len(rank_opportunities(items, limit=1)), 1)

    def test_risk_severity_and_type(self):
        capacity = 100 * MILLION
        items = [
            scored("high", 40, amount=200 * MILLION),
            scored("medium", 40, amount=120 * MILLION),
            scored("gap", 35, amount=50 * MILLION),
            scored("neutral", 60, amount=500 * MILLION),
        ]
        risks = {risk.secop_id: risk for risk in detect_risks(items, capacity)}

        self.assertEqual(set(risks.keys()), {"high", "medium", "gap"})
        self.assertEqual(risks["high"].severity, "high")
        self.assertEqual(risks["high"].risk_type, "capacity_shortfall")
        self.assertEqual(risks["medium"].severity, "medium")
        self.assertEqual(risks["medium"].risk_type, "capacity_shortfall")
        self.assertEqual(risks["gap"].severity, "medium")
        self.assertEqual(risks["gap"].risk_type, "experience_gap")

    def test_mid_band_is_neither_opportunity_nor_risk(self):
        items = [scored("mid", 55), scored("mid2", 69)]
        self.assertEqual(rank_opportunities(items), [])
        self.assertEqual(detect_risks(items, 100 * MILLION), [])

    def test_summary(self):
        stats = summarize_scores([scored("a", 90), scored("b", 40), scored("c", 60), scored("d", 20)])

        self.assertEqual(stats.opportunities, 1)
        self.assertEqual(stats.risks, 1)
        self.assertEqual(stats.avg_score, 53)
        self.assertEqual(stats.total_scored, 4)

    def test_summary_of_nothing(self):
        stats = summarize_scores([])
        self.assertEqual(stats.total_scored, 0)
        self.assertEqual(stats.avg_score, 0)


if __name__ == "__main__":
    unittest.main()
