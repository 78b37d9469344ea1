# treasury/urls.py
from django.urls import include, path
from rest_framework.routers import DefaultRouter

from .views import (
    AccountRecordViewSet, BankViewSet, agency_accounts, agency_payment, customer_debts,
    customer_statement, installment_pay, installments_mark_overdue, installments_upcoming,
    journal_sync, purchases, report_bank_movements, report_financial_summary,
    report_income_expenses, report_loans, report_profit_loss, report_purchases,
    report_treasury_status, report_treasury_summary, supplier_accounts, supplier_statement,
    treasury, treasury_audit, treasury_balance_view,
)

router = DefaultRouter()
router.register(r"account-records", AccountRecordViewSet, basename="account-record")
router.register(r"banks", BankViewSet, basename="bank")

urlpatterns = [
    path("", include(router.urls)),

    path("treasury/", treasury, name="treasury"),
    path("treasury/balance/", treasury_balance_view, name="treasury-balance"),
    path("treasury/audit/", treasury_audit, name="treasury-audit"),
    path("journal/sync/", journal_sync, name="journal-sync"),

    path("purchases/", purchases, name="purchases"),
    path("agency-accounts/", agency_accounts, name="agency-accounts"),
    path("agency-accounts/payments/", agency_payment, name="agency-payment"),

    path("installments/upcoming/", installments_upcoming, name="installments-upcoming"),
    path("installments/mark-overdue/", installments_mark_overdue, name="installments-mark-overdue"),
    path("installments/<int:pk>/pay/", installment_pay, name="installment-pay"),

    path("debts/customers/", customer_debts, name="customer-debts"),
    path("debts/customers/<int:pk>/", customer_statement, name="customer-statement"),
    path("debts/suppliers/", supplier_accounts, name="supplier-accounts"),
    path("debts/suppliers/<int:pk>/", supplier_statement, name="supplier-statement"),

    path("reports/profit-loss/", report_profit_loss, name="report-profit-loss"),
    path("reports/income-expenses/", report_income_expenses, name="report-income-expenses"),
    path("reports/bank-movements/", report_bank_movements, name="report-bank-movements"),
    path("reports/treasury-status/", report_treasury_status, name="report-treasury-status"),
    path("reports/purchases/", report_purchases, name="report-purchases"),
    path("reports/loans/", report_loans, name="report-loans"),
    path("reports/financial-summary/", report_financial_summary, name="report-financial-summary"),
    path("reports/treasury-summary/", report_treasury_summary, name="report-treasury-summary"),
]
