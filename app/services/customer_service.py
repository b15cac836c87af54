from datetime import date

from flask import current_app
from sqlalchemy import select

from app.extensions import db
from app.exceptions import ValidationError, ConflictError
from app.models.biz import Customer
from app.services.identifier_service import IdentifierGenerator
from app.utils.transaction import atomic
from app.utils.validators import require, as_date

CUSTOMER_FIELDS = ('email', 'phone', 'address', 'customer_type', 'registration_date', 'is_active')


class CustomerService:
    @staticmethod
    def register_customer(first_name, last_name, *, identifiers=None, **fields) -> Customer:
        """
        登记客户并分配客户编号
        降级编号写入前先查重，冲突时抛出 ConflictError 由调用方重试
        """
        require(first_name, 'first_name', "名不能为空")
        require(last_name, 'last_name', "姓不能为空")
        unknown = set(fields) - set(CUSTOMER_FIELDS)
        if unknown:
            raise ValidationError(f"不支持的客户字段: {sorted(unknown)}", field=sorted(unknown)[0])

        identifier = (identifiers or IdentifierGenerator()).next_customer_code()
        if identifier.degraded and db.session.execute(
                select(Customer.id).where(Customer.customer_code == identifier.value)).first():
            raise ConflictError(f"客户编号重复: {identifier.value}",
                                payload={'customer_code': identifier.value})

        customer = Customer(
            customer_code=identifier.value,
            first_name=first_name,
            last_name=last_name,
            customer_type=fields.pop('customer_type', None) or Customer.TYPE_INDIVIDUAL,
            registration_date=as_date(fields.pop('registration_date', None), 'registration_date') or date.today(),
            is_active=fields.pop('is_active', True),
            **fields
        )
        with atomic('register_customer'):
            db.session.add(customer)

        current_app.logger.info(f'👤 客户 {customer.customer_code} 已登记')
        return customer
