# chat_archiver/controllers/thread_controller.py
from dataclasses import dataclass, field
from typing import List

from chat_archiver.models import Message
from chat_archiver.services.message_store import MessageStore


@dataclass
class MessageNode:
    message: Message
    replies: List["MessageNode"] = field(default_factory=list)


@dataclass
class ThreadSummary:
    tree: MessageNode
    depth: int
    message_count: int


class ThreadReconstructor:
    """
    Rebuilds reply trees from the parent pointers stored on each message.

    Replies always point at an earlier message, so the walk does not guard
    against cycles. A message whose parent was never stored is simply a root.
    """

    def __init__(self, store: MessageStore):
        self.store = store

    def build_thread_tree(self, root: Message) -> MessageNode:
        node = MessageNode(message=root)
        node.replies = [self.build_thread_tree(reply) for reply in self.store.get_replies(root.id)]
        return node

    def get_thread_depth(self, node: MessageNode) -> int:
        if not node.replies:
            return 1
        return 1 + max(self.get_thread_depth(reply) for reply in node.replies)

    def count_thread_messages(self, node: MessageNode) -> int:
        return 1 + sum(self.count_thread_messages(reply) for reply in node.replies)

    def flatten_thread(self, node: MessageNode) -> List[Message]:
        """Pre-order: the node, then each reply subtree in order."""
        messages = [node.message]
        for reply in node.replies:
            messages.extend(self.flatten_thread(reply))
        return messages

    def summarize(self, root: Message) -> ThreadSummary:
        tree = self.build_thread_tree(root)
        return ThreadSummary(
            tree=tree,
            depth=self.get_thread_depth(tree),
            message_count=self.count_thread_messages(tree),
        )
