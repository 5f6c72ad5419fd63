from borsh_construct import Bool, Bytes, CStruct, Enum, HashMap, Option, String, U16, U64, U8, Vec

# Account discriminants (first byte of every token-metadata account).
KEY_UNINITIALIZED = 0
KEY_EDITION_V1 = 1
KEY_MASTER_EDITION_V1 = 2
KEY_METADATA_V1 = 4
KEY_MASTER_EDITION_V2 = 6
KEY_EDITION_MARKER = 7
KEY_TOKEN_RECORD = 11
KEY_METADATA_DELEGATE = 12

# Instruction discriminants.
IX_UPDATE_METADATA_ACCOUNT_V2 = 15
IX_MINT_NEW_EDITION_FROM_MASTER_EDITION_VIA_TOKEN = 11
IX_CREATE_MASTER_EDITION_V3 = 17
IX_VERIFY_COLLECTION = 18
IX_UNVERIFY_COLLECTION = 22
IX_VERIFY_SIZED_COLLECTION_ITEM = 30
IX_UNVERIFY_SIZED_COLLECTION_ITEM = 31
IX_CREATE_METADATA_ACCOUNT_V3 = 33
IX_LOCK = 46
IX_UNLOCK = 47

CreatorLayout = CStruct("address" / U8[32], "verified" / Bool, "share" / U8)
CollectionLayout = CStruct("verified" / Bool, "key" / U8[32])
UsesLayout = CStruct("use_method" / U8, "remaining" / U64, "total" / U64)

DataV2Layout = CStruct(
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(CreatorLayout)),
    "collection" / Option(CollectionLayout),
    "uses" / Option(UsesLayout),
)

CollectionDetailsLayout = Enum("V1" / CStruct("size" / U64), enum_name="CollectionDetails")

CreateMetadataAccountArgsV3Layout = CStruct(
    "data" / DataV2Layout,
    "is_mutable" / Bool,
    "collection_details" / Option(CollectionDetailsLayout),
)
CreateMasterEditionArgsLayout = CStruct("max_supply" / Option(U64))
UpdateMetadataAccountArgsV2Layout = CStruct(
    "data" / Option(DataV2Layout),
    "update_authority" / Option(U8[32]),
    "primary_sale_happened" / Option(Bool),
    "is_mutable" / Option(Bool),
)
MintNewEditionArgsLayout = CStruct("edition" / U64)

# Single-field tuple variants encode exactly like one-field structs.
PayloadTypeLayout = Enum(
    "Pubkey" / CStruct("value" / U8[32]),
    "Seeds" / CStruct("seeds" / Vec(Bytes)),
    "MerkleProof" / CStruct("proof" / Vec(U8[32])),
    "Number" / CStruct("value" / U64),
    enum_name="PayloadType",
)
AuthorizationDataLayout = CStruct("payload" / CStruct("map" / HashMap(String, PayloadTypeLayout)))
LockArgsLayout = Enum("V1" / CStruct("authorization_data" / Option(AuthorizationDataLayout)), enum_name="LockArgs")
UnlockArgsLayout = Enum("V1" / CStruct("authorization_data" / Option(AuthorizationDataLayout)), enum_name="UnlockArgs")

# Trailing fields added by later program versions are not decoded.
MetadataAccountLayout = CStruct(
    "key" / U8,
    "update_authority" / U8[32],
    "mint" / U8[32],
    "name" / String,
    "symbol" / String,
    "uri" / String,
    "seller_fee_basis_points" / U16,
    "creators" / Option(Vec(CreatorLayout)),
    "primary_sale_happened" / Bool,
    "is_mutable" / Bool,
    "edition_nonce" / Option(U8),
    "token_standard" / Option(U8),
    "collection" / Option(CollectionLayout),
    "uses" / Option(UsesLayout),
)

MasterEditionAccountLayout = CStruct("key" / U8, "supply" / U64, "max_supply" / Option(U64))
EditionAccountLayout = CStruct("key" / U8, "parent" / U8[32], "edition" / U64)
