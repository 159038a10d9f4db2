"""
Projection of ORM rows to the public response shape.

These functions are pure: they read attributes that the service layer has
already loaded and never touch the session.  Storage-only columns
(password, deleted flag, timestamps) are never emitted.
"""
from app.models import Address, Company, Post, User


def format_address(address: Address | None) -> dict | None:
    if address is None:
        return None
    return {
        "street": address.street,
        "suite": address.suite,
        "city": address.city,
        "zipcode": address.zipcode,
        "geo": {
            "lat": address.lat,
            "lng": address.lng,
        },
    }


def format_company(company: Company | None) -> dict | None:
    if company is None:
        return None
    return {
        "name": company.name,
        "catchPhrase": company.catch_phrase,
        "bs": company.bs,
    }


def format_user(user: User) -> dict:
    """Serialise a User (with its address and company loaded) to a plain dict."""
    return {
        "id": user.id,
        "name": user.name,
        "username": user.username,
        "email": user.email,
        "address": format_address(user.address),
        "phone": user.phone,
        "website": user.website,
        "company": format_company(user.company),
    }


def format_post(post: Post) -> dict:
    return {
        "userId": post.user_id,
        "id": post.id,
        "title": post.title,
        "body": post.body,
    }
