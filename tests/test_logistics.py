from datetime import date

from sqlalchemy import text

from kp_importer.importers import dmf, intransit, intransit_product


def intransit_row(number, skb_type="Transfer Antar Cabang", warehouse="Gudang Utama", destination="Bandung",
                  division="Pharmacy"):
    return [number, "2025-06-01", skb_type, warehouse, "Jakarta", destination, "kirim stok", division]


def test_intransit_import_creates_skbs(run, xlsx, seed, fetch, branch):
    bandung = seed("list_branch", branch_name="Bandung", branch_code="02")
    active = seed("list_warehouse", warehouse_name="Utama", branch_id=branch, warehouse_type_id=1)
    damaged = seed("list_warehouse", warehouse_name="Rusak", branch_id=branch, warehouse_type_id=2)
    seed("list_skb", skb_number="SKB-OLD")
    path = xlsx(
        [
            intransit_row("SKB-1"),
            intransit_row("SKB-1"),
            intransit_row("SKB-2", skb_type="Retur Barang Rusak", warehouse="Gudang Barang Rusak", division="Hoslab"),
            intransit_row("SKB-3", destination="Surabaya"),
            intransit_row("SKB-OLD"),
        ]
    )

    code, payload = run(intransit.run, path, admin_id=4)

    assert code == 0
    assert payload["message"] == "Import SKB Central Intransit Success"
    assert payload["message_detail"].startswith("Total 2 rows inserted.")
    rows = fetch("SELECT * FROM list_skb WHERE skb_number != 'SKB-OLD' ORDER BY skb_id")
    assert [row["skb_number"] for row in rows] == ["SKB-1", "SKB-2"]
    first, second = rows
    assert (first["skb_type_id"], first["issuer_warehouse_id"], first["division_id"]) == (3, active, 1)
    assert (second["skb_type_id"], second["issuer_warehouse_id"], second["division_id"]) == (2, damaged, 2)
    assert first["skb_status_id"] == 3
    assert first["is_complete"] == 1
    assert (first["issuer_id"], first["issuer"]) == (branch, "Jakarta")
    assert (first["destination_id"], first["destination"]) == (bandung, "Bandung")
    assert first["skb_date"] == "2025-06-01"
    assert first["createdBy"] == 4


def test_skb_type_mapping():
    assert intransit.skb_type("Retur Barang Reguler") == 10
    assert intransit.skb_type("retur barang rusak") == 2
    assert intransit.skb_type(None) == 3
    assert intransit.issuer_warehouse_type("Gudang Barang Rusak") == 2
    assert intransit.issuer_warehouse_type("Gudang Utama") == 1


def test_intransit_product_fills_empty_skbs_only(run, xlsx, seed, fetch):
    transfer = seed("list_skb", skb_number="SKB-1", skb_type_id=3)
    returned = seed("list_skb", skb_number="SKB-2", skb_type_id=10)
    filled = seed("list_skb", skb_number="SKB-3", skb_type_id=3)
    product_id = seed("list_product", product_code="P1")
    seed("rel_skb_item", skb_id=filled, product_id=product_id, qty=1)
    path = xlsx(
        [
            ["SKB-1", "P1", None, 10, 2, 1500, "B1", None, None, "2026-06-30"],
            ["SKB-2", "P1", None, 4, 0, 1500, "B2"],
            ["SKB-3", "P1", None, 9, 0, 1500, "B3"],
            ["SKB-1", "P404", None, 1, 0, 1500, "B1"],
            ["SKB-404", "P1", None, 1, 0, 1500, "B1"],
        ]
    )

    code, payload = run(intransit_product.run, path)

    assert code == 0
    assert payload["message_detail"].startswith("Total 3 items inserted.")
    items = fetch(
        "SELECT skb_id, qty, is_extra, reference_type_id, batch_number, expired_date "
        "FROM rel_skb_item WHERE skb_id != :filled ORDER BY rel_id",
        filled=filled,
    )
    assert items == [
        {"skb_id": transfer, "qty": 10, "is_extra": 0, "reference_type_id": 2, "batch_number": "B1",
         "expired_date": "2026-06-30"},
        {"skb_id": transfer, "qty": 2, "is_extra": 1, "reference_type_id": 2, "batch_number": "B1",
         "expired_date": "2026-06-30"},
        {"skb_id": returned, "qty": 4, "is_extra": 0, "reference_type_id": None, "batch_number": "B2",
         "expired_date": None},
    ]


def dmf_row(invoice_number, track_type="Pengiriman Barang", loper="budi", courier=None, admin="sari"):
    return [
        "2025-07-01", track_type, "kirim pagi", "01", loper, courier, "RCP-1", invoice_number, "OUT1",
        "Diterima", "Loper", admin, None, None, None, None, "-",
    ]


def test_dmf_groups_invoices_into_track_histories(run, xlsx, seed, fetch, branch, outlet):
    first = seed("list_sales_invoice", sales_invoice_number="INV-1", outlet_id=outlet, branch_id=branch)
    second = seed("list_sales_invoice", sales_invoice_number="INV-2", outlet_id=outlet, branch_id=branch)
    path = xlsx(
        [
            dmf_row("INV-1"),
            dmf_row("INV-2"),
            dmf_row("INV-1", track_type="Penyerahan Faktur ke Piutang", loper=None, courier="JNE", admin=None),
            dmf_row("INV-1", track_type="Ambil Sendiri"),
            dmf_row("INV-404"),
            dmf_row("INV-2")[:16],
        ]
    )

    code, payload = run(dmf.run, path, admin_id=9)

    assert code == 0
    assert payload["message"] == "Import DMF Success"
    assert payload["message_detail"].startswith("Total 3 rows inserted.")

    loper = fetch("SELECT admin_id FROM gemstone_admin WHERE admin_name = 'budi'")[0]["admin_id"]
    sari = fetch("SELECT admin_id FROM gemstone_admin WHERE admin_name = 'sari'")[0]["admin_id"]
    courier = fetch("SELECT courier_id, branch_id, is_active FROM list_courier")
    assert courier == [{"courier_id": courier[0]["courier_id"], "branch_id": branch, "is_active": 1}]

    histories = fetch("SELECT * FROM list_sales_invoice_track_history ORDER BY track_history_id")
    assert len(histories) == 2
    delivery, handover = histories
    assert delivery["track_number"].startswith(f"DMF-{branch}-")
    assert delivery["track_number"] != handover["track_number"]
    assert (delivery["invoice_track_type_id"], delivery["loper_id"], delivery["courier_id"]) == (1, loper, None)
    assert (handover["invoice_track_type_id"], handover["loper_id"]) == (3, None)
    assert handover["courier_id"] == courier[0]["courier_id"]
    assert delivery["receipt_number"] == "RCP-1"
    assert delivery["markedBy"] == 9
    assert delivery["invoice_track_status_id"] == 1

    links = fetch("SELECT * FROM rel_track_history_invoice ORDER BY rel_id")
    assert [(link["track_history_id"], link["sales_invoice_id"]) for link in links] == [
        (delivery["track_history_id"], first),
        (delivery["track_history_id"], second),
        (handover["track_history_id"], first),
    ]
    assert [link["admin_track"] for link in links] == [sari, sari, 9]
    assert all(link["date_track"] == date.today().isoformat() for link in links)
    assert all((link["track_status_id"], link["track_position_id"]) == (3, 2) for link in links)
    assert all(link["outlet_id"] == outlet for link in links)


def test_track_status_and_position_defaults():
    assert dmf.track_status("Dalam Perjalanan") == 2
    assert dmf.track_status("entah") == 1
    assert dmf.track_position("Piutang") == 3
    assert dmf.track_position(None) == dmf.OTHER_POSITION


def test_dmf_skips_rows_whose_admin_cannot_be_created(run, xlsx, seed, fetch, engine, branch, outlet):
    with engine.begin() as conn:
        conn.execute(text("DROP TABLE gemstone_admin"))
        conn.execute(text("CREATE TABLE gemstone_admin (admin_id INTEGER PRIMARY KEY AUTOINCREMENT, admin_name)"))
    andi = seed("gemstone_admin", admin_name="andi")
    sari = seed("gemstone_admin", admin_name="sari")
    seed("list_sales_invoice", sales_invoice_number="INV-1", outlet_id=outlet, branch_id=branch)
    second = seed("list_sales_invoice", sales_invoice_number="INV-2", outlet_id=outlet, branch_id=branch)
    path = xlsx(
        [
            dmf_row("INV-1", loper="budi"),
            dmf_row("INV-2", loper="andi"),
            dmf_row("INV-1", loper=None, courier="JNE", admin="tono"),
        ]
    )

    code, payload = run(dmf.run, path)

    assert code == 0
    assert payload["message_detail"].startswith("Total 1 rows inserted.")
    assert fetch("SELECT admin_name FROM gemstone_admin ORDER BY admin_id") == [
        {"admin_name": "andi"},
        {"admin_name": "sari"},
    ]
    history = fetch("SELECT track_history_id, loper_id FROM list_sales_invoice_track_history")
    assert [row["loper_id"] for row in history] == [andi]
    assert fetch("SELECT track_history_id, sales_invoice_id, admin_track FROM rel_track_history_invoice") == [
        {"track_history_id": history[0]["track_history_id"], "sales_invoice_id": second, "admin_track": sari}
    ]
