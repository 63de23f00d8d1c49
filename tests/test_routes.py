import io

from PIL import Image

from modules.catalog.models import Produce
from modules.order.models import Order
from modules.user.models import Profile

from conftest import make_produce, count_rows, PASSWORD

HTML = {"accept": "text/html"}


def _csrf(client, url="/"):
    client.get(url, headers=HTML)
    return client.cookies.get("csrf_token")


def _sign_in_as(client, account):
    client.cookies.set("auth_token", account["token"])


# ==========================================
# Public pages
# ==========================================

def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_home_and_browse_list_produce(client, farmer):
    make_produce(farmer["id"], "Carrot", location="Pune, MH")
    make_produce(farmer["id"], "Mango", location="Goa")

    assert "Carrot" in client.get("/", headers=HTML).text

    r = client.get("/browse", params={"q": "man", "location": "all"}, headers=HTML)
    assert r.status_code == 200
    assert "Mango" in r.text
    assert "Carrot" not in r.text


def test_api_produce_filters(client, farmer):
    make_produce(farmer["id"], "Carrot", location="Pune, MH")
    make_produce(farmer["id"], "Tomato", location="Pune, MH")
    make_produce(farmer["id"], "Mango", location="Goa")

    data = client.get("/api/produce", params={"q": "to"}).json()
    assert [p["name"] for p in data["produces"]] == ["Tomato"]
    assert data["total"] == 3
    assert data["available_locations"] == ["Goa", "Pune"]
    assert data["produces"][0]["farmer"]["full_name"] == "Fiona Farmer"


def test_unknown_page_renders_404(client):
    r = client.get("/no/such/page", headers=HTML)
    assert r.status_code == 404
    assert "Page not found" in r.text


def test_pricing_page(client):
    assert client.get("/pricing", headers=HTML).status_code == 200


def test_pages_render_their_templates_with_the_request(client, consumer):
    _sign_in_as(client, consumer)
    for url, template in [
        ("/", "shop/index.html"),
        ("/browse", "shop/browse.html"),
        ("/cart", "shop/cart.html"),
        ("/profile", "shop/profile.html"),
        ("/order-confirmation", "shop/order_confirmation.html"),
    ]:
        r = client.get(url, headers=HTML)
        assert r.status_code == 200, url
        assert r.template.name == template
        assert r.context["request"].url.path == url
        assert r.context["csrf_token"]


# ==========================================
# Access control
# ==========================================

def test_protected_page_redirects_to_login_with_next(client):
    r = client.get("/profile", headers=HTML, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/auth/login?next=%2Fprofile"


def test_api_returns_401_json_for_anonymous(client):
    r = client.get("/api/cart", headers={"accept": "application/json"})
    assert r.status_code == 401
    assert r.json()["detail"] == "login_required"


def test_consumer_is_sent_home_from_farmer_pages(client, consumer):
    _sign_in_as(client, consumer)
    r = client.get("/sell", headers=HTML, follow_redirects=False)
    assert r.status_code == 302
    assert r.headers["location"] == "/"


def test_form_post_without_csrf_is_rejected(client, consumer):
    _sign_in_as(client, consumer)
    r = client.post("/cart/clear", data={}, headers=HTML, follow_redirects=False)
    assert r.status_code == 403


# ==========================================
# Auth flows
# ==========================================

def test_signup_signs_in_and_creates_profile(client):
    token = _csrf(client, "/auth/signup")
    r = client.post("/auth/signup", data={
        "email": "grower@example.com", "password": "secret123", "confirm_password": "secret123",
        "full_name": "Gina Grower", "location": "Goa", "role": "farmer", "csrf_token": token,
    }, headers=HTML, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/profile"
    assert client.cookies.get("auth_token")

    page = client.get("/profile", headers=HTML)
    assert "Gina Grower" in page.text
    assert "Account created!" in page.text
    assert count_rows(Profile, role="farmer") == 1


def test_signup_errors_are_shown(client):
    token = _csrf(client, "/auth/signup")
    r = client.post("/auth/signup", data={
        "email": "grower@example.com", "password": "secret123", "confirm_password": "different",
        "full_name": "Gina", "location": "Goa", "csrf_token": token,
    }, headers=HTML)
    assert r.status_code == 400
    assert "Passwords do not match" in r.text
    assert count_rows(Profile) == 0


def test_login_then_logout(client, consumer):
    token = _csrf(client, "/auth/login")
    bad = client.post("/auth/login", data={
        "email": consumer["email"], "password": "wrong", "csrf_token": token,
    }, headers=HTML)
    assert bad.status_code == 400
    assert "Invalid login credentials" in bad.text

    ok = client.post("/auth/login", data={
        "email": consumer["email"], "password": PASSWORD, "next": "/cart", "csrf_token": token,
    }, headers=HTML, follow_redirects=False)
    assert ok.status_code == 303
    assert ok.headers["location"] == "/cart"
    assert client.cookies.get("auth_token")

    out = client.get("/auth/logout", headers=HTML, follow_redirects=False)
    assert out.status_code == 303
    assert client.cookies.get("auth_token") is None


def test_login_next_cannot_leave_the_site(client, consumer):
    token = _csrf(client, "/auth/login")
    r = client.post("/auth/login", data={
        "email": consumer["email"], "password": PASSWORD, "next": "//evil.example", "csrf_token": token,
    }, headers=HTML, follow_redirects=False)
    assert r.headers["location"] == "/"


# ==========================================
# Cart & checkout
# ==========================================

def test_cart_and_checkout_flow(client, farmer, consumer):
    carrot = make_produce(farmer["id"], "Carrot", price="2.50")
    _sign_in_as(client, consumer)
    token = _csrf(client, "/browse")

    r = client.post("/cart/add", data={"produce_id": carrot, "quantity": 3, "csrf_token": token},
                    headers=HTML, follow_redirects=False)
    assert r.status_code == 303

    cart = client.get("/cart", headers=HTML)
    assert "Carrot" in cart.text
    assert "7.50" in cart.text

    r = client.post("/cart/checkout", data={"csrf_token": token}, headers=HTML, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"].startswith("/order-confirmation?ids=")

    confirmation = client.get(r.headers["location"], headers=HTML)
    assert "Thank you for your order" in confirmation.text
    assert "Carrot" in confirmation.text
    assert count_rows(Order, consumer_id=consumer["id"], status="pending") == 1

    assert client.get("/api/cart").json()["cart_count"] == 0


def test_anonymous_add_to_cart_goes_to_login(client, farmer):
    carrot = make_produce(farmer["id"], "Carrot")
    token = _csrf(client, "/browse")
    r = client.post("/cart/add", data={"produce_id": carrot, "csrf_token": token},
                    headers=HTML, follow_redirects=False)
    assert r.headers["location"] == "/auth/login?next=/browse"


def test_cart_api(client, farmer, consumer):
    carrot = make_produce(farmer["id"], "Carrot", price="2.50")
    _sign_in_as(client, consumer)
    token = _csrf(client, "/browse")

    r = client.post("/api/cart/add", json={"produce_id": carrot, "quantity": 2},
                    headers={"X-CSRF-Token": token})
    assert r.status_code == 200
    assert r.json()["cart_count"] == 2

    item_id = r.json()["items"][0]["id"]
    r = client.post("/api/cart/update", json={"cart_item_id": item_id, "quantity": 0},
                    headers={"X-CSRF-Token": token})
    assert r.json()["cart_count"] == 0
    assert r.json()["total_price"] in ("0", 0, 0.0)

    r = client.post("/api/cart/add", json={"quantity": 2}, headers={"X-CSRF-Token": token})
    assert r.status_code == 422


# ==========================================
# Selling
# ==========================================

def _png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (40, 40), "orange").save(buf, format="PNG")
    return buf.getvalue()


def test_farmer_sells_with_image_and_image_is_served(client, farmer):
    _sign_in_as(client, farmer)
    token = _csrf(client, "/sell")
    r = client.post("/sell", data={
        "name": "Pumpkin", "description": "Big orange pumpkins", "price": "6.75",
        "location": "", "csrf_token": token,
    }, files={"image": ("pumpkin.png", _png(), "image/png")}, headers=HTML, follow_redirects=False)
    assert r.status_code == 303
    assert r.headers["location"] == "/profile?tab=listings"

    data = client.get("/api/produce").json()
    listing = data["produces"][0]
    assert listing["location"] == farmer["location"]
    image_path = listing["image_url"].replace("http://testserver", "")
    served = client.get(image_path)
    assert served.status_code == 200
    assert served.content[:8] == b"\x89PNG\r\n\x1a\n"


def test_sell_validation_errors_rerender_form(client, farmer):
    _sign_in_as(client, farmer)
    token = _csrf(client, "/sell")
    r = client.post("/sell", data={
        "name": "P", "description": "Big orange pumpkins", "price": "", "location": "Goa", "csrf_token": token,
    }, headers=HTML)
    assert r.status_code == 400
    assert "Price is required" in r.text
    assert count_rows(Produce) == 0


def test_delete_listing_with_orders_shows_conflict(client, farmer, consumer):
    carrot = make_produce(farmer["id"], "Carrot")
    _sign_in_as(client, consumer)
    token = _csrf(client, "/browse")
    client.post("/cart/add", data={"produce_id": carrot, "csrf_token": token}, headers=HTML)
    client.post("/cart/checkout", data={"csrf_token": token}, headers=HTML)

    _sign_in_as(client, farmer)
    r = client.post(f"/produce/{carrot}/delete", data={"csrf_token": token}, headers=HTML)
    assert r.status_code == 200
    assert "existing orders and cannot be deleted" in r.text
    assert count_rows(Produce, id=carrot) == 1


def test_storage_rejects_traversal(client):
    assert client.get("/storage/produce-images/..%2F..%2Fetc%2Fpasswd").status_code == 404


def test_oversized_cart_numbers_are_rejected_without_crashing(client, farmer, consumer):
    carrot = make_produce(farmer["id"], "Carrot")
    _sign_in_as(client, consumer)
    token = _csrf(client, "/browse")
    headers = {"X-CSRF-Token": token}

    r = client.post("/api/cart/add", json={"produce_id": carrot, "quantity": 1}, headers=headers)
    item_id = r.json()["items"][0]["id"]

    r = client.post("/api/cart/update", json={"cart_item_id": item_id, "quantity": 10 ** 30}, headers=headers)
    assert r.status_code == 400
    assert r.json()["cart_count"] == 1

    r = client.post("/api/cart/add", json={"produce_id": 10 ** 30, "quantity": 1}, headers=headers)
    assert r.status_code == 400

    r = client.post("/cart/update", data={
        "cart_item_id": item_id, "quantity": str(10 ** 30), "csrf_token": token,
    }, headers=HTML, follow_redirects=False)
    assert r.status_code == 303
    assert count_rows(Order) == 0
    assert client.get("/api/cart").json()["cart_count"] == 1
