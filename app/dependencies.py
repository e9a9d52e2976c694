from fastapi import Query, Request


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def page_params(
    page: int = Query(default=1, ge=1),
    page_size: int | None = Query(default=None, ge=1),
) -> dict:
    return {'page': page, 'page_size': page_size}
