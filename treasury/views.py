# treasury/views.py
# ============================================================
# Imports
# ============================================================
import logging
from datetime import datetime, time

from dateutil import parser as dateparser
from django.shortcuts import get_object_or_404
from django.utils import timezone

from rest_framework import permissions, status, viewsets
from rest_framework.decorators import action, api_view
from rest_framework.response import Response

from trading.models import Agency, Customer, Supplier
from trading.serializers import TransactionSerializer
from trading.services import TradingError, require_admin, require_privileged
from trading.views import DomainErrorsMixin, bad_request, current_staff

from .banks import (
    create_bank, create_bank_transaction, create_loan, deposit_from_safe, mark_overdue_installments,
    pay_installment, reconcile_bank, upcoming_installments, visible_banks,
)
from .debts import customer_ledger, customers_with_debt, supplier_balances, supplier_details
from .ledger import Scope, audit_treasury, sync_journal, treasury_balance, treasury_entries
from .reports import (
    bank_movements, financial_summary, income_expenses, loans_report, profit_and_loss,
    purchases_report, treasury_status, treasury_summary,
)
from .serializers import (
    AccountRecordCreateSerializer, AccountRecordSerializer, AccountRecordUpdateSerializer,
    AgencyPaymentSerializer, BankCreateSerializer, BankDetailSerializer, BankSerializer,
    BankTransactionSerializer, InstallmentSerializer, LoanCreateSerializer, LoanSerializer,
    PayInstallmentSerializer, PurchaseInvoiceSerializer, SafeDepositSerializer,
)
from .services import (
    PurchaseLine, TreasuryError, account_records, agency_purchase_accounts, create_account_record,
    create_purchase_invoice, delete_account_record, purchase_invoices, record_agency_payment,
    update_account_record,
)

logger = logging.getLogger(__name__)

ERRORS = (TradingError, TreasuryError)


# ============================================================
# Helpers
# ============================================================
def _parse_when(raw, end=False):
    if not raw:
        return None
    try:
        value = dateparser.isoparse(raw)
    except ValueError:
        raise TreasuryError(f"bad date {raw!r}")
    # a bare date covers the whole day
    if len(raw) <= 10:
        value = datetime.combine(value.date(), time.max if end else time.min)
    if timezone.is_naive(value):
        value = timezone.make_aware(value)
    return value


def date_params(request):
    params = request.query_params
    return _parse_when(params.get("start")), _parse_when(params.get("end"), end=True)


def scope_param(request):
    return Scope.parse(request.query_params.get("agency"))


class TreasuryErrorsMixin(DomainErrorsMixin):
    domain_errors = ERRORS


# ============================================================
# Account records
# ============================================================
class AccountRecordViewSet(TreasuryErrorsMixin, viewsets.ReadOnlyModelViewSet):
    """
    /api/account-records/?type=INCOME|EXPENSE&agency=ALL|GENERAL|<id>
      POST   writes the record and its journal entry
      PATCH  amount / description / category, journal entry follows
      DELETE removes the record and its journal entry
    """
    permission_classes = [permissions.AllowAny]
    serializer_class = AccountRecordSerializer

    def get_queryset(self):
        return account_records(self.request.query_params.get("type"), scope_param(self.request))

    def create(self, request, *args, **kwargs):
        ser = AccountRecordCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        rec = create_account_record(staff=self.staff, **ser.validated_data)
        return Response(AccountRecordSerializer(rec).data, status=status.HTTP_201_CREATED)

    def partial_update(self, request, *args, **kwargs):
        rec = self.get_object()
        ser = AccountRecordUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        require_privileged(self.staff)
        rec = update_account_record(rec, **ser.validated_data)
        return Response(AccountRecordSerializer(rec).data)

    def destroy(self, request, *args, **kwargs):
        rec = self.get_object()
        require_privileged(self.staff)
        delete_account_record(rec)
        return Response(status=status.HTTP_204_NO_CONTENT)


# ============================================================
# Treasury
# ============================================================
@api_view(["GET"])
def treasury(request):
    """Balance of one safe plus its entries newest first."""
    try:
        scope = scope_param(request)
        start, end = date_params(request)
        entries = treasury_entries(scope, start, end)
        balance = treasury_balance(scope)
    except ERRORS as e:
        return bad_request(e)
    return Response({
        "scope": str(scope),
        "balance": balance,
        "entries": [ln.as_dict() for ln in entries],
    })


@api_view(["GET"])
def treasury_balance_view(request):
    try:
        scope = scope_param(request)
    except ERRORS as e:
        return bad_request(e)
    return Response({"scope": str(scope), "balance": treasury_balance(scope)})


@api_view(["GET"])
def treasury_audit(request):
    try:
        audit = audit_treasury(scope_param(request))
    except ERRORS as e:
        return bad_request(e)
    return Response(audit.as_dict())


@api_view(["POST"])
def journal_sync(request):
    try:
        require_admin(current_staff(request))
    except ERRORS as e:
        return bad_request(e)
    return Response({"entries": sync_journal()})


# ============================================================
# Purchases & agency accounts
# ============================================================
@api_view(["GET", "POST"])
def purchases(request):
    if request.method == "GET":
        qs = purchase_invoices(request.query_params.get("agency"))[:200]
        return Response(TransactionSerializer(qs, many=True).data)

    ser = PurchaseInvoiceSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    d = dict(ser.validated_data)
    items = [PurchaseLine(i["product"], i["quantity"], i["cost"]) for i in d.pop("items")]
    try:
        tx = create_purchase_invoice(staff=current_staff(request), items=items, **d)
    except ERRORS as e:
        return bad_request(e)
    return Response(TransactionSerializer(tx).data, status=status.HTTP_201_CREATED)


@api_view(["GET"])
def agency_accounts(request):
    staff = current_staff(request)
    ids = None
    if staff is not None and not staff.is_privileged:
        ids = list(staff.agencies.values_list("pk", flat=True))
        if staff.agency_id and staff.agency_id not in ids:
            ids.append(staff.agency_id)
    rows = agency_purchase_accounts(ids)
    for row in rows:
        row["transactions"] = TransactionSerializer(row["transactions"], many=True).data
    return Response(rows)


@api_view(["POST"])
def agency_payment(request):
    ser = AgencyPaymentSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    d = dict(ser.validated_data)
    agency = get_object_or_404(Agency, pk=d.pop("agency"))
    try:
        tx = record_agency_payment(staff=current_staff(request), agency=agency, **d)
    except ERRORS as e:
        return bad_request(e)
    return Response(TransactionSerializer(tx).data, status=status.HTTP_201_CREATED)


# ============================================================
# Banks & loans
# ============================================================
class BankViewSet(TreasuryErrorsMixin, viewsets.ModelViewSet):
    """
    /api/banks/
      POST                       opening balance is booked as a deposit
      GET  <id>/                 latest transactions and loans with installments
      POST <id>/transactions/    DEPOSIT or WITHDRAWAL
      POST <id>/deposit-from-safe/
      POST <id>/loans/
      GET  <id>/reconcile/
    """
    permission_classes = [permissions.AllowAny]
    serializer_class = BankSerializer
    http_method_names = ["get", "post", "patch", "delete", "head", "options"]

    def get_queryset(self):
        return visible_banks(self.staff, self.request.query_params.get("agency"))

    def get_serializer_class(self):
        if self.action == "retrieve":
            return BankDetailSerializer
        return super().get_serializer_class()

    def create(self, request, *args, **kwargs):
        ser = BankCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        require_privileged(self.staff)
        bank = create_bank(**ser.validated_data)
        return Response(BankSerializer(bank).data, status=status.HTTP_201_CREATED)

    def perform_update(self, serializer):
        require_privileged(self.staff)
        serializer.save()

    def perform_destroy(self, instance):
        require_admin(self.staff)
        logger.info("deleting bank %s", instance.pk)
        instance.delete()

    @action(detail=True, methods=["POST"], url_path="transactions")
    def transactions(self, request, pk=None):
        bank = self.get_object()
        ser = BankTransactionSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        row = create_bank_transaction(bank=bank, **ser.validated_data)
        return Response(BankTransactionSerializer(row).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["POST"], url_path="deposit-from-safe")
    def deposit_from_safe(self, request, pk=None):
        bank = self.get_object()
        ser = SafeDepositSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        row = deposit_from_safe(staff=self.staff, bank=bank, **ser.validated_data)
        return Response(BankTransactionSerializer(row).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["POST"], url_path="loans")
    def loans(self, request, pk=None):
        bank = self.get_object()
        ser = LoanCreateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        loan = create_loan(bank=bank, **ser.validated_data)
        return Response(LoanSerializer(loan).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["GET"], url_path="reconcile")
    def reconcile(self, request, pk=None):
        return Response(reconcile_bank(self.get_object()).as_dict())


@api_view(["POST"])
def installment_pay(request, pk):
    ser = PayInstallmentSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    try:
        inst = pay_installment(pk, bank=ser.validated_data.get("bank"))
    except ERRORS as e:
        return bad_request(e)
    return Response(InstallmentSerializer(inst).data)


@api_view(["GET"])
def installments_upcoming(request):
    days = request.query_params.get("days")
    try:
        days = int(days) if days else None
    except ValueError:
        return bad_request(f"bad days value {days!r}")
    return Response(InstallmentSerializer(upcoming_installments(days=days), many=True).data)


@api_view(["POST"])
def installments_mark_overdue(request):
    return Response({"updated": mark_overdue_installments()})


# ============================================================
# Customer & supplier balances
# ============================================================
@api_view(["GET"])
def customer_debts(request):
    return Response(customers_with_debt(current_staff(request)))


@api_view(["GET"])
def customer_statement(request, pk):
    return Response(customer_ledger(get_object_or_404(Customer, pk=pk)))


@api_view(["GET"])
def supplier_accounts(request):
    agency = request.query_params.get("agency")
    if not agency:
        return bad_request("agency is required")
    return Response(supplier_balances(agency))


@api_view(["GET"])
def supplier_statement(request, pk):
    return Response(supplier_details(get_object_or_404(Supplier.objects.select_related("agency"), pk=pk)))


# ============================================================
# Reports
# ============================================================
def _report(request, build, scoped=False):
    try:
        start, end = date_params(request)
        if scoped:
            return Response(build(start, end, scope_param(request)))
        return Response(build(start, end))
    except ERRORS as e:
        return bad_request(e)


@api_view(["GET"])
def report_profit_loss(request):
    return _report(request, profit_and_loss, scoped=True)


@api_view(["GET"])
def report_income_expenses(request):
    return _report(request, income_expenses, scoped=True)


@api_view(["GET"])
def report_bank_movements(request):
    bank = request.query_params.get("bank")
    return _report(request, lambda start, end: bank_movements(start, end, bank))


@api_view(["GET"])
def report_treasury_status(request):
    return _report(request, treasury_status)


@api_view(["GET"])
def report_purchases(request):
    warehouse = request.query_params.get("warehouse")
    return _report(request, lambda start, end: purchases_report(start, end, warehouse))


@api_view(["GET"])
def report_loans(request):
    return Response(loans_report())


@api_view(["GET"])
def report_financial_summary(request):
    return _report(request, financial_summary)


@api_view(["GET"])
def report_treasury_summary(request):
    return _report(request, treasury_summary, scoped=True)
