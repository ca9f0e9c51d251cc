from fastapi import APIRouter

from leavedesk.api.balances import adjustment_router, employee_balance_router, employee_ledger_router
from leavedesk.api.employees import employees_router
from leavedesk.api.holidays import holidays_router
from leavedesk.api.jobs import jobs_router
from leavedesk.api.policies import router as policies_router
from leavedesk.api.requests import requests_router

api_router = APIRouter()
api_router.include_router(policies_router)
api_router.include_router(employees_router)
api_router.include_router(employee_balance_router)
api_router.include_router(employee_ledger_router)
api_router.include_router(adjustment_router)
api_router.include_router(requests_router)
api_router.include_router(holidays_router)
api_router.include_router(jobs_router)
