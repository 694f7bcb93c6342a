"""
SNF Chart of Accounts - canonical hierarchy for proforma line items

Code ranges:
- 4000-4999: Revenue (long-term care, skilled, ancillary, totals)
- 5000-5999: Departmental operating expenses (therapy, nursing, plant,
             housekeeping/laundry, dietary, social services/activities)
- 6000-6999: Administrative & general, other operating, EBITDAR
- 7000-7999: Property (rent, property tax/insurance), EBITDA
- 8000-8999: Capital (depreciation, amortization, interest)
- 9000-9999: Net income and statistics (patient days, beds, census)

Header rows group children and never receive values. Total rows are
aggregates; category fallbacks map to them.

PPD (per-patient-day) eligible accounts declare their denominator: total
patient days, or the payer-specific day count for payer revenue.
"""
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

TOTAL_DAYS = "total_days"
MEDICAID_DAYS = "medicaid_days"
MEDICARE_DAYS = "medicare_days"


class COAAccount(BaseModel):
    """One canonical chart-of-accounts entry"""
    model_config = ConfigDict(frozen=True)

    code: str = Field(..., description="Hierarchical numeric code, e.g. '4110'")
    name: str
    category: str
    parent_code: Optional[str] = None
    is_header: bool = False
    is_total: bool = False
    ppd_eligible: bool = False
    ppd_denominator: Optional[str] = None
    mapping_keys: tuple[str, ...] = ()


def _header(code: str, name: str, category: str, parent: Optional[str] = None) -> COAAccount:
    return COAAccount(code=code, name=name, category=category, parent_code=parent, is_header=True)


def _account(
    code: str,
    name: str,
    category: str,
    parent: str,
    keys: tuple[str, ...] = (),
    denominator: Optional[str] = TOTAL_DAYS,
    total: bool = False,
) -> COAAccount:
    return COAAccount(
        code=code,
        name=name,
        category=category,
        parent_code=parent,
        is_total=total,
        ppd_eligible=denominator is not None,
        ppd_denominator=denominator,
        mapping_keys=keys,
    )


SNF_CHART_OF_ACCOUNTS: list[COAAccount] = [
    # === REVENUE (4000) ===
    _header("4000", "Revenue", "revenue"),
    _header("4100", "Long-Term Care Revenue", "revenue", "4000"),
    _account("4110", "Medicaid Room & Board", "revenue", "4100",
             ("medicaid_room_board", "medicaid_room_and_board", "medicaid_room_board_revenue",
              "medicaid_rb", "medicaid_routine"), MEDICAID_DAYS),
    _account("4120", "Managed Medicaid", "revenue", "4100",
             ("managed_medicaid_revenue", "medicaid_managed_care", "medicaid_mco"), MEDICAID_DAYS),
    _account("4130", "Private Pay", "revenue", "4100",
             ("private_pay_revenue", "private_room_board", "private_pay_room_board")),
    _account("4140", "VA Contract", "revenue", "4100",
             ("va_contract", "va_revenue", "veterans_administration")),
    _account("4150", "Hospice Room & Board", "revenue", "4100",
             ("hospice_room_board", "hospice_revenue")),
    _header("4200", "Skilled Revenue", "revenue", "4000"),
    _account("4210", "Medicare Part A", "revenue", "4200",
             ("medicare_part_a", "medicare_a_revenue", "medicare_part_a_revenue", "medicare_revenue"),
             MEDICARE_DAYS),
    _account("4215", "Medicare Advantage", "revenue", "4200",
             ("medicare_advantage_revenue", "managed_medicare", "medicare_replacement")),
    _account("4250", "Commercial Insurance / HMO", "revenue", "4200",
             ("commercial_insurance", "managed_care_revenue", "hmo_revenue")),
    _header("4400", "Ancillary & Other Revenue", "revenue", "4000"),
    _account("4410", "Medicare Part B", "revenue", "4400",
             ("medicare_part_b", "part_b_revenue", "medicare_b_revenue")),
    _account("4420", "Other Ancillary Revenue", "revenue", "4400",
             ("ancillary_revenue", "pharmacy_revenue")),
    _account("4430", "Supplemental Payments (UPL/IGT)", "revenue", "4400",
             ("upl_revenue", "supplemental_payments", "qipp", "igt_revenue")),
    _account("4490", "Other Operating Revenue", "revenue", "4400",
             ("other_revenue", "miscellaneous_revenue", "other_operating_revenue")),
    _account("4999", "Total Revenue", "revenue", "4000",
             ("total_revenue", "total_operating_revenue", "net_patient_revenue"), total=True),

    # === OPERATING EXPENSES (5000) ===
    _header("5000", "Operating Expenses", "expense"),
    _header("5100", "Therapy", "therapy", "5000"),
    _account("5111", "Physical Therapy", "therapy", "5100", ("physical_therapy_expense", "pt_expense")),
    _account("5112", "Occupational Therapy", "therapy", "5100", ("occupational_therapy_expense", "ot_expense")),
    _account("5113", "Speech Therapy", "therapy", "5100", ("speech_therapy_expense", "slp_expense")),
    _account("5119", "Total Therapy", "therapy", "5100", ("total_therapy", "total_therapy_expense"), total=True),

    _header("5200", "Nursing", "nursing", "5000"),
    _account("5210", "RN Wages", "nursing", "5200", ("rn_salaries", "registered_nurse_wages")),
    _account("5211", "LPN Wages", "nursing", "5200", ("lpn_salaries", "licensed_practical_nurse_wages")),
    _account("5212", "CNA Wages", "nursing", "5200", ("cna_salaries", "nurse_aide_wages", "certified_nursing_assistant_wages")),
    _account("5220", "Nursing Benefits & Payroll Taxes", "nursing", "5200",
             ("nursing_payroll_taxes", "nursing_benefits_taxes")),
    _account("5230", "Agency Nursing", "nursing", "5200", ("agency_staffing", "nursing_agency", "agency_labor")),
    _account("5253", "Nursing Supplies", "nursing", "5200", ("medical_supplies", "nursing_supplies_expense")),
    _account("5299", "Total Nursing", "nursing", "5200", ("total_nursing", "total_nursing_expense"), total=True),

    _header("5400", "Plant Operations", "plant", "5000"),
    _account("5410", "Maintenance Wages", "plant", "5400", ("maintenance_wages", "maintenance_salaries")),
    _account("5420", "Repairs & Maintenance", "plant", "5400", ("repairs_maintenance", "repairs_and_maintenance")),
    _account("5430", "Electricity", "plant", "5400", ("electricity", "electric_expense")),
    _account("5431", "Natural Gas", "plant", "5400", ("natural_gas", "gas_expense")),
    _account("5432", "Water & Sewer", "plant", "5400", ("water_sewer", "water_and_sewer")),
    _account("5499", "Total Plant Operations", "plant", "5400", ("total_plant", "total_plant_operations"), total=True),

    _header("5500", "Housekeeping & Laundry", "housekeeping", "5000"),
    _account("5510", "Housekeeping", "housekeeping", "5500", ("housekeeping", "housekeeping_wages", "environmental_services")),
    _account("5520", "Laundry & Linen", "housekeeping", "5500", ("laundry", "laundry_linen", "laundry_and_linen")),

    _header("5700", "Dietary", "dietary", "5000"),
    _account("5710", "Dietary Wages", "dietary", "5700", ("dietary_wages", "dietary_salaries")),
    _account("5740", "Raw Food", "dietary", "5700", ("raw_food_cost", "food_purchases")),
    _account("5750", "Dietary Supplies", "dietary", "5700", ("dietary_supplies",)),
    _account("5799", "Total Dietary", "dietary", "5700", ("total_dietary", "total_dietary_expense"), total=True),

    _header("5800", "Resident Services", "resident_services", "5000"),
    _account("5810", "Social Services", "resident_services", "5800", ("social_services", "social_services_wages")),
    _account("5820", "Activities", "resident_services", "5800", ("activities", "activities_wages")),

    # === ADMINISTRATIVE & OTHER (6000) ===
    _header("6000", "Administrative & General", "admin"),
    _account("6110", "Administrator Salary", "admin", "6000", ("administrator_salary", "administrator_wages")),
    _account("6120", "Business Office Wages", "admin", "6000", ("business_office_wages", "office_salaries")),
    _account("6140", "Information Technology", "admin", "6000", ("information_technology", "computer_expense", "software")),
    _account("6150", "General Liability Insurance", "admin", "6000",
             ("general_liability_insurance", "liability_insurance")),
    _account("6151", "Professional Liability", "admin", "6000", ("professional_liability_insurance", "malpractice_insurance")),
    _account("6152", "Workers Compensation", "admin", "6000", ("workers_compensation", "workers_comp_insurance")),
    _account("6170", "Legal Fees", "admin", "6000", ("legal_fees", "legal_expense")),
    _account("6171", "Accounting & Audit", "admin", "6000", ("accounting_fees", "audit_fees")),
    _account("6199", "Total Administrative & General", "admin", "6000",
             ("total_administrative", "total_general_administrative", "total_ga"), total=True),
    _account("6200", "Bad Debt", "other_expense", "6000", ("bad_debt_expense", "provision_for_bad_debt")),
    _account("6300", "Provider Tax", "other_expense", "6000",
             ("provider_tax_expense", "bed_tax_expense", "quality_assessment_fee")),
    _account("6499", "Total Operating Expenses", "expense", "6000",
             ("total_operating_expenses", "total_expenses"), total=True),
    _account("6500", "Management Fees", "other_expense", "6000", ("management_fees", "management_fee_expense")),
    _account("6600", "EBITDAR", "summary", "6000", ("ebitdar",), total=True),

    # === PROPERTY (7000) ===
    _header("7000", "Property", "property"),
    _account("7010", "Rent / Lease Expense", "property", "7000", ("rent_expense", "lease_expense", "facility_rent")),
    _account("7020", "Property Taxes", "property", "7000", ("property_taxes", "real_estate_taxes")),
    _account("7030", "Property Insurance", "property", "7000", ("property_insurance",)),
    _account("7100", "EBITDA", "summary", "7000", ("ebitda",), total=True),

    # === CAPITAL (8000) ===
    _header("8000", "Capital Costs", "capital"),
    _account("8010", "Depreciation", "capital", "8000", ("depreciation_expense",)),
    _account("8020", "Amortization", "capital", "8000", ("amortization_expense",)),
    _account("8030", "Interest", "capital", "8000", ("interest_expense", "mortgage_interest")),

    # === NET INCOME & STATISTICS (9000) ===
    _account("9000", "Net Income", "summary", "8000", ("net_income", "net_profit", "net_income_loss"), total=True),
    _header("9100", "Patient Days", "statistics"),
    _account("9111", "Medicaid Days", "statistics", "9100", ("medicaid_patient_days", "medicaid_resident_days"), None),
    _account("9121", "Medicare Days", "statistics", "9100", ("medicare_patient_days", "medicare_a_days"), None),
    _account("9129", "Skilled Days", "statistics", "9100", ("skilled_patient_days",), None),
    _account("9131", "Private Pay Days", "statistics", "9100", ("private_pay_days", "private_patient_days"), None),
    _account("9199", "Total Patient Days", "statistics", "9100",
             ("total_patient_days", "resident_days"), None, total=True),
    _header("9200", "Capacity & Census", "statistics"),
    _account("9210", "Licensed Beds", "statistics", "9200", ("licensed_beds", "number_of_beds"), None),
    _account("9211", "Operational Beds", "statistics", "9200", ("operational_beds", "available_beds"), None),
    _account("9220", "Average Daily Census", "statistics", "9200", ("average_daily_census",), None),
    _account("9230", "Occupancy", "statistics", "9200", ("occupancy_rate", "occupancy_percentage"), None),
]

_BY_CODE: dict[str, COAAccount] = {a.code: a for a in SNF_CHART_OF_ACCOUNTS}
_BY_MAPPING_KEY: dict[str, COAAccount] = {
    key: account
    for account in SNF_CHART_OF_ACCOUNTS
    for key in account.mapping_keys
}


def find_account(code: str) -> Optional[COAAccount]:
    """Look up an account by code"""
    return _BY_CODE.get(code)


def find_account_by_mapping_key(key: str) -> Optional[COAAccount]:
    """Look up an account by one of its canonical mapping keys"""
    return _BY_MAPPING_KEY.get(key)


def category_from_code(code: str) -> str:
    """Coarse category from the leading digit of a code"""
    first_digit = code[:1]
    if first_digit == "4":
        return "revenue"
    if first_digit in ("5", "6"):
        return "expense"
    if first_digit == "7":
        return "rent_occupancy"
    if first_digit == "8":
        return "depreciation_interest"
    if first_digit == "9":
        return "statistics"
    return "other"
