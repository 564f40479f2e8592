from fastapi import Request

# Services are built once in create_app and shared by every request


def get_catalog_service(request: Request):
    return request.app.state.catalog_service


def get_identity_service(request: Request):
    return request.app.state.identity_service


def get_loan_service(request: Request):
    return request.app.state.loan_service
