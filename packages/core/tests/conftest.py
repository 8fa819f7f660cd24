"""Shared fixtures: reference wizard inputs and statutory constant sets."""

from decimal import Decimal
from typing import Any

import pytest

from dane_core.tax_constants import TAX_YEAR_2020, TaxYearConfig


@pytest.fixture
def config_2020() -> TaxYearConfig:
    """Statutory constants for tax year 2020."""
    return TAX_YEAR_2020


@pytest.fixture
def synthetic_config() -> TaxYearConfig:
    """2020 thresholds without flat-rate expenses.

    Keeps the self-employment base equal to income minus contributions so the
    expected figures follow directly from the allowance and rate formulas.
    """
    return TAX_YEAR_2020.model_copy(
        update={
            "version": "synthetic-no-flat-expenses",
            "flat_expense_rate": Decimal("0"),
            "flat_expense_cap": Decimal("0"),
        }
    )


@pytest.fixture
def with_children_input() -> dict[str, Any]:
    """Self-employed taxpayer with two children, nothing else claimed."""
    return {
        "priloha3_r11_socialne": "1000",
        "priloha3_r13_zdravotne": "1000",
        "r001_dic": "233123123",
        "r003_nace": "62010 - Počítačové programovanie",
        "meno_priezvisko": "Fake Name",
        "r007_ulica": "Mierova",
        "r008_cislo": "4",
        "r009_psc": "82105",
        "r010_obec": "Bratislava 3",
        "r011_stat": "Slovensko",
        "t1r10_prijmy": "25000",
        "datum": "22.02.2020",
        "children": [
            {
                "id": 1,
                "priezviskoMeno": "Morty Smith",
                "rodneCislo": "1607201167",
                "kupelnaStarostlivost": False,
                "wholeYear": False,
                "monthFrom": "6",
                "monthTo": "11",
            },
            {
                "id": 2,
                "priezviskoMeno": "Summer Smith",
                "rodneCislo": "1057201167",
                "kupelnaStarostlivost": False,
                "wholeYear": True,
                "monthFrom": "6",
                "monthTo": "11",
            },
        ],
        "hasChildren": True,
    }


@pytest.fixture
def complete_input() -> dict[str, Any]:
    """Every section of the wizard filled in."""
    return {
        "priloha3_r11_socialne": "1000",
        "priloha3_r13_zdravotne": "1000",
        "r001_dic": "233123123",
        "r003_nace": "62010 - Počítačové programovanie",
        "r005_meno": "Fake",
        "r004_priezvisko": "Name",
        "r006_titul": "Ing. / PhD.",
        "r007_ulica": "Mierova",
        "r008_cislo": "4",
        "r009_psc": "82105",
        "r010_obec": "Bratislava 3",
        "r011_stat": "Slovensko",
        "t1r10_prijmy": "25000",
        "r120": "100",
        "datum": "22.02.2020",
        # Employment
        "r038": "4000",
        "r039": "1000",
        "r122": "80",
        "r108": "50",
        "employed": True,
        # Mortgage
        "r037_uplatnuje_uroky": True,
        "r037_zaplatene_uroky": "200",
        "r037_pocetMesiacov": "12",
        # Pension
        "platil_prispevky_na_dochodok": True,
        "r075_zaplatene_prispevky_na_dochodok": "180",
        # Partner
        "r031_priezvisko_a_meno": "Fake Fake",
        "r031_rodne_cislo": "9609226286",
        "r032_partner_pocet_mesiacov": "12",
        "r032_partner_vlastne_prijmy": "3000",
        "r032_uplatnujem_na_partnera": True,
        "partner_spolocna_domacnost": True,
        "partner_bonus_uplatneny": False,
        # Spa
        "r036_deti_kupele": "30",
        "r033_partner_kupele": True,
        "r033_partner_kupele_uhrady": "20",
        "r076a_kupele_danovnik": "20",
        "danovnikInSpa": True,
        "kupele": True,
        # Children
        "children": [
            {
                "id": 1,
                "priezviskoMeno": "Morty Smith",
                "rodneCislo": "1607201167",
                "kupelnaStarostlivost": True,
                "wholeYear": False,
                "monthFrom": "6",
                "monthTo": "11",
            },
            {
                "id": 2,
                "priezviskoMeno": "Summer Smith",
                "rodneCislo": "1057201167",
                "kupelnaStarostlivost": True,
                "wholeYear": True,
                "monthFrom": "6",
                "monthTo": "11",
            },
        ],
        "hasChildren": True,
    }


@pytest.fixture
def minimal_input() -> dict[str, Any]:
    """Only the mandatory self-employment lines, no optional section."""
    return {
        "t1r10_prijmy": "25000",
        "priloha3_r11_socialne": "1000",
        "priloha3_r13_zdravotne": "1000",
    }
