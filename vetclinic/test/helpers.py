"""Payload builders shared by the tests."""


def line(description="Consultation", quantity="1", unit_price="10.00", tax_rate="7", **kw):
    data = {
        "description": description,
        "quantity": quantity,
        "unit_price": unit_price,
        "tax_rate": tax_rate,
    }
    data.update(kw)
    return data
