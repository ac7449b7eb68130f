"""GraphQL documents sent to the ledger indexer."""

COIN_DECIMALS = """
query CoinDecimals($coin_type: String!) {
  coin_infos(where: {coin_type: {_eq: $coin_type}}) {
    decimals
  }
}
"""

COIN_HOLDERS_PAGE = """
query CoinHolders($coin_type: String!, $offset: Int!, $limit: Int!) {
  current_coin_balances(
    offset: $offset
    limit: $limit
    where: {coin_type: {_eq: $coin_type}, amount: {_gt: "0"}}
  ) {
    amount
  }
}
"""

SWAP_ACTIVITIES_PAGE = """
query SwapActivities(
  $address: String!
  $entry_function: String!
  $offset: Int!
  $limit: Int!
) {
  account_transactions(
    offset: $offset
    limit: $limit
    where: {
      account_address: {_eq: $address}
      user_transaction: {entry_function_id_str: {_eq: $entry_function}}
    }
    order_by: {transaction_version: desc}
  ) {
    transaction_version
    user_transaction {
      timestamp
    }
    coin_activities {
      amount
      activity_type
      coin_type
      is_gas_fee
      transaction_timestamp
    }
  }
}
"""

ACCOUNT_SENDERS_PAGE = """
query AccountSenders($address: String!, $offset: Int!, $limit: Int!) {
  account_transactions(
    offset: $offset
    limit: $limit
    where: {account_address: {_eq: $address}}
    order_by: {transaction_version: desc}
  ) {
    transaction_version
    user_transaction {
      sender
      timestamp
    }
  }
}
"""

SWAP_EVENTS_PAGE = """
query SwapEvents($event_type: String!, $offset: Int!, $limit: Int!) {
  events(
    offset: $offset
    limit: $limit
    where: {indexed_type: {_like: $event_type}}
    order_by: {transaction_version: desc}
  ) {
    transaction_version
    type
    data
  }
}
"""

TRANSACTION_TIMESTAMPS = """
query TransactionTimestamps($versions: [bigint!]!) {
  user_transactions(where: {version: {_in: $versions}}) {
    version
    timestamp
  }
}
"""
