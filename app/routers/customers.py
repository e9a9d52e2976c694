from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, Response
from sqlalchemy.orm import Session

from app.auth import TenantContext, get_current_context
from app.db import get_db
from app.dependencies import get_client_ip, page_params
from app.models import CustomerType
from app.schemas import (
    CustomerCreate,
    CustomerDetailOut,
    CustomerOut,
    CustomerUpdate,
    EquipmentCreate,
    EquipmentOut,
    EquipmentUpdate,
    PageOut,
    PropertyIn,
    PropertyOut,
    PropertyUpdate,
    to_page,
)
from app.services import customer_service

router = APIRouter(prefix='/customers', tags=['customers'])


@router.get('', response_model=PageOut[CustomerOut])
def list_customers(
    search: str | None = None,
    type: CustomerType | None = None,
    sort: str = 'name',
    order: str = Query(default='asc', pattern='^(asc|desc)$'),
    paging: dict = Depends(page_params),
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    page = customer_service.list_customers(
        db, ctx, search=search, customer_type=type, sort=sort, order=order, **paging
    )
    return to_page(page, CustomerOut)


@router.post('', response_model=CustomerOut, status_code=201)
def create_customer(
    payload: CustomerCreate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    customer = customer_service.create_customer(db, ctx, data=payload, ip=get_client_ip(request))
    return CustomerOut.model_validate(customer)


@router.get('/{customer_id}', response_model=CustomerDetailOut)
def get_customer(
    customer_id: int,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    detail = customer_service.get_customer_with_relations(db, ctx, customer_id)
    return CustomerDetailOut(
        **CustomerOut.model_validate(detail.customer).model_dump(),
        properties=[PropertyOut.model_validate(p) for p in detail.properties],
        equipment=[EquipmentOut.model_validate(e) for e in detail.equipment],
    )


@router.patch('/{customer_id}', response_model=CustomerOut)
def update_customer(
    customer_id: int,
    payload: CustomerUpdate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    customer = customer_service.update_customer(db, ctx, customer_id, data=payload, ip=get_client_ip(request))
    return CustomerOut.model_validate(customer)


@router.delete('/{customer_id}', status_code=204)
def delete_customer(
    customer_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    customer_service.delete_customer(db, ctx, customer_id, ip=get_client_ip(request))
    return Response(status_code=204)


@router.post('/{customer_id}/properties', response_model=PropertyOut, status_code=201)
def create_property(
    customer_id: int,
    payload: PropertyIn,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    prop = customer_service.create_property(db, ctx, customer_id, data=payload, ip=get_client_ip(request))
    return PropertyOut.model_validate(prop)


@router.patch('/{customer_id}/properties/{property_id}', response_model=PropertyOut)
def update_property(
    customer_id: int,
    property_id: int,
    payload: PropertyUpdate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    prop = customer_service.update_property(
        db, ctx, customer_id, property_id, data=payload, ip=get_client_ip(request)
    )
    return PropertyOut.model_validate(prop)


@router.post('/{customer_id}/properties/{property_id}/primary', response_model=PropertyOut)
def set_primary_property(
    customer_id: int,
    property_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    prop = customer_service.set_primary_property(db, ctx, customer_id, property_id, ip=get_client_ip(request))
    return PropertyOut.model_validate(prop)


@router.delete('/{customer_id}/properties/{property_id}', status_code=204)
def delete_property(
    customer_id: int,
    property_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    customer_service.delete_property(db, ctx, customer_id, property_id, ip=get_client_ip(request))
    return Response(status_code=204)


@router.post('/{customer_id}/equipment', response_model=EquipmentOut, status_code=201)
def create_equipment(
    customer_id: int,
    payload: EquipmentCreate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    item = customer_service.create_equipment(db, ctx, customer_id, data=payload, ip=get_client_ip(request))
    return EquipmentOut.model_validate(item)


@router.patch('/{customer_id}/equipment/{equipment_id}', response_model=EquipmentOut)
def update_equipment(
    customer_id: int,
    equipment_id: int,
    payload: EquipmentUpdate,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    item = customer_service.update_equipment(
        db, ctx, customer_id, equipment_id, data=payload, ip=get_client_ip(request)
    )
    return EquipmentOut.model_validate(item)


@router.delete('/{customer_id}/equipment/{equipment_id}', status_code=204)
def delete_equipment(
    customer_id: int,
    equipment_id: int,
    request: Request,
    ctx: TenantContext = Depends(get_current_context),
    db: Session = Depends(get_db),
):
    customer_service.delete_equipment(db, ctx, customer_id, equipment_id, ip=get_client_ip(request))
    return Response(status_code=204)
