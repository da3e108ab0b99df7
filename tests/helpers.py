url_prefix = "/api/v1"


def address(zip_code: str = "560001"):
    return {
        "full_name": "Alice Doe",
        "phone": "9000000001",
        "line1": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "country": "India",
        "zip_code": zip_code,
    }


def line(product, label: str, quantity: int):
    return {"product_id": str(product.public_id), "variant_label": label, "quantity": quantity}


async def add_to_cart(ac_client, headers, product, label: str, quantity: int):
    resp = await ac_client.post(f"{url_prefix}/cart/items", json=line(product, label, quantity), headers=headers)
    assert resp.status_code in (200, 201), resp.text
    return resp.json()["data"]["item"]


async def checkout(ac_client, headers, method: str, items, zip_code: str = "560001"):
    return await ac_client.post(f"{url_prefix}/orders/checkout/{method}",
                                json={"items": items, "address": address(zip_code)}, headers=headers)


def webhook_form(token: str, status: str = "SUCCESS", order_id: str = "ORD-X"):
    return {"order_id": order_id, "status": status, "remark1": token}
