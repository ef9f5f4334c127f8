"""
End-to-end API flows: catalog management, sales recording and reports.
"""

import io
from pathlib import Path

from tienda.models import Product, Sale


def _stored_images(app) -> set:
    folder = Path(app.config["UPLOAD_FOLDER"]) / "products"
    return set(folder.iterdir()) if folder.exists() else set()


def _image(name="foto.png"):
    return (io.BytesIO(b"\x89PNG fake image"), name)


class TestProductsApi:
    def test_create_product_json(self, client, headers, category):
        resp = client.post("/api/products", headers=headers, json={
            "category_id": category.id,
            "name": "Te helado",
            "code": "BEB-100",
            "price": "12.50",
            "cost": 8,
            "stock": 12,
        })
        assert resp.status_code == 201, resp.json
        assert resp.json["price_cents"] == 1250
        assert resp.json["cost_cents"] == 800
        assert resp.json["min_stock"] == 5
        assert resp.json["category"]["id"] == category.id

    def test_create_product_multipart_with_image(self, client, headers, category):
        resp = client.post(
            "/api/products",
            headers=headers,
            data={
                "category_id": str(category.id),
                "name": "Cafe",
                "code": "BEB-101",
                "price": "3.50",
                "cost": "2.00",
                "stock": "4",
                "image": (io.BytesIO(b"\x89PNG fake image"), "foto cafe.png"),
            },
            content_type="multipart/form-data",
        )
        assert resp.status_code == 201, resp.json
        assert resp.json["image"].startswith("products/")
        assert resp.json["image"].endswith("_foto_cafe.png")

    def test_image_extension_checked(self, client, headers, category):
        resp = client.post(
            "/api/products",
            headers=headers,
            data={
                "category_id": str(category.id),
                "name": "Cafe",
                "code": "BEB-102",
                "price": "3.50",
                "cost": "2.00",
                "stock": "4",
                "image": (io.BytesIO(b"MZ"), "virus.exe"),
            },
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert resp.json["field"] == "image"

    def test_duplicate_code_conflict(self, client, headers, products, category):
        resp = client.post("/api/products", headers=headers, json={
            "category_id": category.id, "name": "Otra cola", "code": "BEB-001", "price": "1.00",
            "cost": "0.50", "stock": 1,
        })
        assert resp.status_code == 409
        assert resp.json["field"] == "code"

    def test_invalid_price(self, client, headers, category):
        resp = client.post("/api/products", headers=headers, json={
            "category_id": category.id, "name": "X", "code": "X-1", "price": "1.999",
        })
        assert resp.status_code == 400
        assert resp.json["field"] == "price"

    def test_price_beyond_decimal_precision(self, client, headers, category):
        resp = client.post("/api/products", headers=headers, json={
            "category_id": category.id, "name": "X", "code": "X-2", "price": "1e30",
            "cost": "1.00", "stock": 1,
        })
        assert resp.status_code == 400
        assert resp.json["field"] == "price"

    def test_cost_and_stock_required_on_create(self, client, headers, category, db_session):
        resp = client.post("/api/products", headers=headers, json={
            "category_id": category.id, "name": "Sin costo", "code": "X-3", "price": "4.00",
        })
        assert resp.status_code == 400
        assert resp.json["field"] == "cost_cents"

        resp = client.post("/api/products", headers=headers, json={
            "category_id": category.id, "name": "Sin stock", "code": "X-4", "price": "4.00", "cost": "2.00",
        })
        assert resp.status_code == 400
        assert resp.json["field"] == "stock"
        assert db_session.query(Product).filter(Product.code.in_(["X-3", "X-4"])).count() == 0

    def test_rejected_create_keeps_no_image(self, app, client, headers, products, category):
        before = _stored_images(app)

        duplicate = client.post(
            "/api/products",
            headers=headers,
            data={
                "category_id": str(category.id), "name": "Otra cola", "code": "BEB-001",
                "price": "1.00", "cost": "0.50", "stock": "1", "image": _image(),
            },
            content_type="multipart/form-data",
        )
        assert duplicate.status_code == 409

        bad_category = client.post(
            "/api/products",
            headers=headers,
            data={
                "category_id": "999999", "name": "Huerfano", "code": "BEB-900",
                "price": "1.00", "cost": "0.50", "stock": "1", "image": _image(),
            },
            content_type="multipart/form-data",
        )
        assert bad_category.status_code == 400
        assert bad_category.json["field"] == "category_id"

        assert _stored_images(app) == before

    def test_update_unknown_product_keeps_no_image(self, app, client, headers):
        before = _stored_images(app)
        resp = client.put(
            "/api/products/999999",
            headers=headers,
            data={"name": "Fantasma", "image": _image()},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 404
        assert _stored_images(app) == before

    def test_replaced_and_deleted_images_are_removed(self, app, client, headers, category):
        upload_root = Path(app.config["UPLOAD_FOLDER"])
        created = client.post(
            "/api/products",
            headers=headers,
            data={
                "category_id": str(category.id), "name": "Pan", "code": "PAN-1",
                "price": "0.75", "cost": "0.40", "stock": "30", "image": _image("pan.png"),
            },
            content_type="multipart/form-data",
        )
        assert created.status_code == 201, created.json
        first = upload_root / created.json["image"]
        assert first.exists()

        replaced = client.put(
            f"/api/products/{created.json['id']}",
            headers=headers,
            data={"image": _image("pan nuevo.jpg")},
            content_type="multipart/form-data",
        )
        assert replaced.status_code == 200, replaced.json
        second = upload_root / replaced.json["image"]
        assert second.exists()
        assert not first.exists()

        # Plain field edits keep the current image
        renamed = client.put(f"/api/products/{created.json['id']}", headers=headers, json={"name": "Pan dulce"})
        assert renamed.json["image"] == replaced.json["image"]
        assert second.exists()

        assert client.delete(f"/api/products/{created.json['id']}", headers=headers).status_code == 200
        assert not second.exists()

    def test_list_and_detail(self, client, headers, products):
        listing = client.get("/api/products?per_page=2", headers=headers)
        assert listing.status_code == 200
        assert listing.json["count"] == 2
        assert listing.json["pagination"]["total"] == 3

        cola_id = products["cola"].id
        detail = client.get(f"/api/products/{cola_id}", headers=headers)
        assert detail.json["code"] == "BEB-001"

        assert client.get("/api/products/999999", headers=headers).status_code == 404

    def test_edit_form_and_update(self, client, headers, products, db_session):
        cola_id = products["cola"].id

        form = client.get(f"/api/products/{cola_id}/edit", headers=headers)
        assert form.status_code == 200
        assert [c["name"] for c in form.json["categories"]] == ["Bebidas"]

        resp = client.post(f"/api/products/{cola_id}/edit", headers=headers, data={"price": "11.00", "min_stock": "3"})
        assert resp.status_code == 200, resp.json
        assert resp.json["price_cents"] == 1100

        resp = client.put(f"/api/products/{cola_id}", headers=headers, json={"code": "BEB-001", "stock": 40})
        assert resp.status_code == 200
        assert resp.json["stock"] == 40

        conflict = client.put(f"/api/products/{cola_id}", headers=headers, json={"code": "BEB-002"})
        assert conflict.status_code == 409

    def test_low_stock(self, client, headers, products):
        resp = client.get("/api/products/low-stock", headers=headers)
        assert resp.status_code == 200
        assert [p["code"] for p in resp.json["items"]] == ["BEB-002"]

    def test_delete_product_with_sales_refused(self, client, headers, products):
        cola_id = products["cola"].id
        client.post("/api/sales", headers=headers, json={
            "items": [{"product_id": cola_id, "quantity": 1}], "payment_method": "cash",
        })

        assert client.delete(f"/api/products/{cola_id}", headers=headers).status_code == 409
        jugo_id = products["jugo"].id
        assert client.delete(f"/api/products/{jugo_id}", headers=headers).status_code == 200


class TestCategoriesAndCustomersApi:
    def test_category_lifecycle(self, client, headers, db_session):
        created = client.post("/api/categories", headers=headers, json={"name": "Snacks"})
        assert created.status_code == 201
        category_id = created.json["id"]

        client.post("/api/products", headers=headers, json={
            "category_id": category_id, "name": "Papas", "code": "SNK-1", "price": "1.25",
            "cost": "0.80", "stock": 6,
        })

        updated = client.put(f"/api/categories/{category_id}", headers=headers, json={"description": "Botanas"})
        assert updated.json["description"] == "Botanas"

        deleted = client.delete(f"/api/categories/{category_id}", headers=headers)
        assert deleted.status_code == 200
        assert deleted.json["deleted_products"] == 1
        db_session.expire_all()
        assert db_session.query(Product).filter_by(code="SNK-1").first() is None

    def test_category_name_required(self, client, headers):
        resp = client.post("/api/categories", headers=headers, json={"description": "sin nombre"})
        assert resp.status_code == 400
        assert resp.json["field"] == "name"

    def test_customer_email_unique_case_insensitive(self, client, headers, customer):
        resp = client.post("/api/customers", headers=headers, json={"name": "Maria L.", "email": "MARIA@example.com"})
        assert resp.status_code == 409

    def test_delete_customer_detaches_sales(self, client, headers, products, customer, db_session):
        customer_id = customer.id
        sale = client.post("/api/sales", headers=headers, json={
            "customer_id": customer_id,
            "items": [{"product_id": products["jugo"].id, "quantity": 1}],
            "payment_method": "transfer",
        })
        sale_id = sale.json["sale"]["id"]

        resp = client.delete(f"/api/customers/{customer_id}", headers=headers)
        assert resp.status_code == 200
        assert resp.json["detached_sales"] == 1

        detail = client.get(f"/api/sales/{sale_id}", headers=headers)
        assert detail.json["sale"]["customer"] is None


class TestSalesApi:
    def test_record_sale(self, client, headers, products, customer, db_session):
        cola_id = products["cola"].id
        resp = client.post("/api/sales", headers=headers, json={
            "customer_id": customer.id,
            "items": [{"product_id": cola_id, "quantity": 3}],
            "payment_method": "cash",
        })
        assert resp.status_code == 201, resp.json
        sale = resp.json["sale"]
        assert sale["invoice_number"] == "INV-000001"
        assert (sale["subtotal"], sale["tax"], sale["total"]) == ("30.00", "3.60", "33.60")
        assert sale["username"] == "cajero"
        assert sale["items"][0]["product_name"] == "Cola"

        db_session.expire_all()
        assert db_session.get(Product, cola_id).stock == 7

    def test_record_sale_with_discount(self, client, headers, products):
        resp = client.post("/api/sales", headers=headers, json={
            "items": [
                {"product_id": products["cola"].id, "quantity": 6},
                {"product_id": products["jugo"].id, "quantity": 8},
            ],
            "payment_method": "card",
            "discount": "10.00",
        })
        assert resp.status_code == 201, resp.json
        sale = resp.json["sale"]
        assert (sale["subtotal"], sale["discount"], sale["tax"], sale["total"]) == (
            "100.00", "10.00", "10.80", "100.80"
        )

    def test_insufficient_stock(self, client, headers, products, db_session):
        agua_id = products["agua"].id
        resp = client.post("/api/sales", headers=headers, json={
            "items": [{"product_id": agua_id, "quantity": 5}],
            "payment_method": "cash",
        })
        assert resp.status_code == 400
        assert resp.json["details"]["product_id"] == agua_id
        assert resp.json["details"]["available"] == 3

        db_session.expire_all()
        assert db_session.query(Sale).count() == 0
        assert db_session.get(Product, agua_id).stock == 3

    def test_unknown_product(self, client, headers, products):
        resp = client.post("/api/sales", headers=headers, json={
            "items": [{"product_id": 999999, "quantity": 1}],
            "payment_method": "cash",
        })
        assert resp.status_code == 404

    def test_malformed_sale(self, client, headers):
        resp = client.post("/api/sales", headers=headers, json={"items": [], "payment_method": "cash"})
        assert resp.status_code == 400
        assert resp.json["field"] == "items"

    def test_discount_beyond_decimal_precision(self, client, headers, products, db_session):
        resp = client.post("/api/sales", headers=headers, json={
            "items": [{"product_id": products["cola"].id, "quantity": 1}],
            "payment_method": "cash",
            "discount": "1e30",
        })
        assert resp.status_code == 400
        assert resp.json["field"] == "discount"
        db_session.expire_all()
        assert db_session.query(Sale).count() == 0

    def test_sale_form_and_listing(self, client, headers, products, customer):
        form = client.get("/api/sales/new", headers=headers)
        assert {p["code"] for p in form.json["products"]} == {"BEB-001", "BEB-002", "BEB-003"}
        assert form.json["customers"][0]["name"] == "Maria Lopez"

        client.post("/api/sales", headers=headers, json={
            "items": [{"product_id": products["cola"].id, "quantity": 1}], "payment_method": "cash",
        })
        listing = client.get("/api/sales", headers=headers)
        assert listing.json["pagination"]["total"] == 1
        assert client.get("/api/sales/424242", headers=headers).status_code == 404

    def test_report(self, client, headers, products):
        client.post("/api/sales", headers=headers, json={
            "items": [{"product_id": products["cola"].id, "quantity": 1}], "payment_method": "cash",
        })

        resp = client.get("/api/sales/report", headers=headers)
        assert resp.status_code == 200
        assert resp.json["total_sales"] == "11.20"
        assert resp.json["top_products"][0]["code"] == "BEB-001"

        empty = client.get("/api/sales/report?start_date=2001-01-01&end_date=2001-01-31", headers=headers)
        assert empty.json["sales"] == []
        assert empty.json["total_sales_cents"] == 0

        bad = client.get("/api/sales/report?start_date=01/02/2024", headers=headers)
        assert bad.status_code == 400
        assert bad.json["field"] == "start_date"

    def test_dashboard(self, client, headers, products):
        client.post("/api/sales", headers=headers, json={
            "items": [{"product_id": products["jugo"].id, "quantity": 2}], "payment_method": "cash",
        })

        resp = client.get("/api/dashboard", headers=headers)
        assert resp.status_code == 200
        assert resp.json["today_sales"] == "11.20"
        assert resp.json["low_stock_products"] == 1
        assert resp.json["total_products"] == 3
        assert resp.json["top_products"][0]["code"] == "BEB-003"
