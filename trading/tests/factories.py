import itertools
from decimal import Decimal

from trading.models import Agency, Customer, Product, Staff, Supplier, Warehouse
from trading.services import add_stock, create_staff

_seq = itertools.count(1)


def make_agency(name=None):
    return Agency.objects.create(name=name or f"Agency {next(_seq)}")


def make_staff(role=Staff.ADMIN, agency=None, **kw):
    n = next(_seq)
    member = Staff(username=kw.pop("username", f"user{n}"), role=role, agency=agency, **kw)
    member.set_password("secret")
    member.save()
    if agency is not None:
        member.agencies.set([agency])
    return member


def make_rep(agency, pricing_type=Staff.RETAIL, admin=None):
    admin = admin or Staff.objects.filter(role=Staff.ADMIN).first() or make_staff(Staff.ADMIN)
    return create_staff(staff=admin, username=f"rep{next(_seq)}", password="secret",
                        role=Staff.SALES_REPRESENTATIVE, agencies=[agency], pricing_type=pricing_type)


def make_warehouse(agency, name=None):
    return Warehouse.objects.create(name=name or f"Warehouse {next(_seq)}", agency=agency)


def make_supplier(agency, name=None):
    return Supplier.objects.create(name=name or f"Supplier {next(_seq)}", agency=agency)


def make_product(agency, supplier=None, **kw):
    """Ten pieces a carton: factory 60/6, wholesale 80/8, retail 100/10."""
    fields = {
        "factory_price": Decimal("60"), "wholesale_price": Decimal("80"), "retail_price": Decimal("100"),
        "units_per_carton": 10,
        "unit_factory_price": Decimal("6"), "unit_wholesale_price": Decimal("8"), "unit_retail_price": Decimal("10"),
    }
    fields.update(kw)
    return Product.objects.create(name=f"Product {next(_seq)}", agency=agency, supplier=supplier, **fields)


def make_customer(agency, rep=None, name=None):
    return Customer.objects.create(name=name or f"Customer {next(_seq)}", agency=agency, representative=rep)


def stocked(warehouse, product, qty):
    add_stock(warehouse, product, qty)
    return product
