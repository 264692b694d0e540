from coursemarket.utils.cache import MemoryCache


def test_set_get_and_delete():
    c = MemoryCache()
    c.set_json("cart_totals:u1", {"total": "10.00"}, 300)
    assert c.get_json("cart_totals:u1") == {"total": "10.00"}
    c.delete("cart_totals:u1", "missing")
    assert c.get_json("cart_totals:u1") is None


def test_expired_entries_are_gone():
    c = MemoryCache()
    c.set_json("cart_coupon:u1", {"code": "X"}, -1)
    assert c.get_json("cart_coupon:u1") is None


def test_invalidate_by_pattern():
    c = MemoryCache()
    for k in ("coupon:1", "coupon:10", "coupons:all", "coupon_validation:SAVE20:u1:ab", "cart_coupon:u1"):
        c.set_json(k, 1, 60)
    removed = c.invalidate(["coupon:1", "coupons:*", "coupon_validation:SAVE20:*"])
    assert removed == 3
    assert c.get_json("coupon:10") == 1
    assert c.get_json("cart_coupon:u1") == 1


def test_oldest_entry_evicted_when_full():
    c = MemoryCache(max_entries=2)
    c.set_json("a", 1, 60)
    c.set_json("b", 2, 60)
    c.set_json("c", 3, 60)
    assert c.get_json("a") is None
    assert c.get_json("c") == 3
