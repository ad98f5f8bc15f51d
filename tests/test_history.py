import threading
import uuid

from app.conversations import ConversationContext, InMemoryHistoryStore, Turn


def test_history_keeps_latest_turns(tenant_id):
    store = InMemoryHistoryStore(max_turns=3)
    for index in range(5):
        store.append(tenant_id, "conv", Turn("user", f"message {index}"))

    turns = store.context(tenant_id, "conv").turns
    assert [turn.text for turn in turns] == ["message 2", "message 3", "message 4"]


def test_history_is_scoped_by_tenant_and_conversation(tenant_id):
    store = InMemoryHistoryStore()
    store.append(tenant_id, "a", Turn("user", "hi"), Turn("assistant", "hello"))

    assert store.context(tenant_id, "b").turns == ()
    assert store.context(uuid.uuid4(), "a").turns == ()
    store.clear(tenant_id, "a")
    assert store.context(tenant_id, "a").turns == ()


def test_concurrent_appends_are_not_lost(tenant_id):
    store = InMemoryHistoryStore(max_turns=100)

    def _worker(index):
        store.append(tenant_id, "conv", Turn("user", str(index)))

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(store.context(tenant_id, "conv").turns) == 20


def test_context_window():
    context = ConversationContext.from_turns(
        [Turn("user", str(i)) for i in range(10)], limit=4
    )
    assert [t.text for t in context.turns] == ["6", "7", "8", "9"]
    assert [t.text for t in context.window(2)] == ["8", "9"]
    assert context.window(0) == ()
    assert ConversationContext.from_turns([Turn("user", "x")], limit=0).turns == ()
